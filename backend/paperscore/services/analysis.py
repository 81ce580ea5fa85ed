"""
Analysis driver - walks students and their papers, recognizes scores and
persists the ones that survive reconciliation.

Processing is strictly sequential (one recognition request in flight at a
time) with a cooldown pause every few papers, because the vision API quota
is the bottleneck. A failure on one paper or student is recorded as a
diagnostic and the loop moves on; only precondition violations and score
store failures stop a run.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from paperscore.config import (
    logger,
    ANALYSIS_COOLDOWN_EVERY,
    ANALYSIS_COOLDOWN_SECONDS,
    ANALYSIS_LOCK_TTL_SECONDS,
)
from paperscore.errors import ConsistencyError, PersistenceError, ValidationError
from paperscore.models.analysis import AnalysisRunResult, PaperDiagnostic, RecognitionFailure
from paperscore.models.exam import Exam, Paper, Question, Student
from paperscore.services.exam_data import get_owned_exam, list_papers, list_questions, list_students
from paperscore.services.locks import ExamLease
from paperscore.services.reconciliation import reconcile
from paperscore.services.score_store import ScoreStore
from paperscore.utils.images import ImageDecodeError, normalize_for_recognition, scratch_image


@dataclass
class AnalysisPlan:
    """Everything a run needs, checked before any paper is touched."""
    exam: Exam
    teacher_id: str
    questions: List[Question]
    students: List[Student]
    diagnostics: List[PaperDiagnostic] = field(default_factory=list)


@dataclass
class _RunState:
    students_inspected: int = 0
    papers_inspected: int = 0
    scores_saved: int = 0
    discarded_papers: int = 0
    failed_papers: int = 0
    diagnostics: List[PaperDiagnostic] = field(default_factory=list)

    def note(self, kind: str, student_id: str, message: str, paper_id: Optional[str] = None):
        self.diagnostics.append(PaperDiagnostic(kind=kind, student_id=student_id, paper_id=paper_id, message=message))


class AnalysisRunner:

    def __init__(
        self,
        db,
        recognition_client,
        score_store: Optional[ScoreStore] = None,
        cooldown_every: int = ANALYSIS_COOLDOWN_EVERY,
        cooldown_seconds: float = ANALYSIS_COOLDOWN_SECONDS,
        lease: Optional[ExamLease] = None,
        sleep=asyncio.sleep,
    ):
        self.db = db
        self.recognition_client = recognition_client
        self.score_store = score_store or ScoreStore(db)
        self.cooldown_every = max(1, cooldown_every)
        self.cooldown_seconds = cooldown_seconds
        self.lease = lease or ExamLease(db, ANALYSIS_LOCK_TTL_SECONDS)
        self._sleep = sleep

    async def prepare(self, exam_id: str, teacher_id: str, student_ids: Optional[List[str]] = None) -> AnalysisPlan:
        """
        Check preconditions and resolve the target students.

        student_ids=None analyzes the whole class; a list restricts the run to
        those students (ids not on the roster are reported and skipped).
        """
        exam = await get_owned_exam(self.db, exam_id, teacher_id)

        questions = await list_questions(self.db, exam_id)
        if not questions:
            raise ValidationError("Add at least one question to the exam before starting an analysis")

        roster = await list_students(self.db, exam.class_id)
        diagnostics = []

        if student_ids is None:
            students = roster
        else:
            if not student_ids:
                raise ValidationError("Select at least one student to analyze")
            by_id = {s.student_id: s for s in roster}
            students = []
            for sid in dict.fromkeys(student_ids):
                if sid in by_id:
                    students.append(by_id[sid])
                else:
                    diagnostics.append(PaperDiagnostic(
                        kind="unknown_student", student_id=sid,
                        message=f"Student {sid} is not on the class roster"
                    ))

        if not students:
            raise ValidationError("There are no students to analyze for this exam")

        return AnalysisPlan(
            exam=exam, teacher_id=teacher_id, questions=questions,
            students=students, diagnostics=diagnostics
        )

    async def run(self, exam_id: str, teacher_id: str, student_ids: Optional[List[str]] = None) -> AnalysisRunResult:
        """Prepare, hold the exam lease and execute in one call."""
        plan = await self.prepare(exam_id, teacher_id, student_ids)
        holder = f"run_{uuid.uuid4().hex[:12]}"
        await self.lease.acquire(exam_id, holder)
        try:
            return await self.execute(plan)
        finally:
            await self.lease.release(exam_id, holder)

    async def execute(self, plan: AnalysisPlan) -> AnalysisRunResult:
        exam_id = plan.exam.exam_id
        state = _RunState(diagnostics=list(plan.diagnostics))

        logger.info(f"=== ANALYSIS START === Exam {exam_id}: {len(plan.students)} student(s), {len(plan.questions)} question(s)")

        for student in plan.students:
            state.students_inspected += 1
            try:
                papers = await list_papers(self.db, exam_id, student.student_id)
            except PyMongoError as e:
                logger.error(f"Could not load papers of student {student.student_id}: {e}")
                state.note("load_error", student.student_id, f"Papers could not be loaded: {e}")
                continue

            if not papers:
                state.note("no_papers", student.student_id, f"No paper uploaded for {student.name}")
                continue

            for paper in papers:
                if state.papers_inspected and state.papers_inspected % self.cooldown_every == 0:
                    logger.info(f"⏸️ Cooldown after {state.papers_inspected} papers: waiting {self.cooldown_seconds}s")
                    await self._sleep(self.cooldown_seconds)

                state.papers_inspected += 1
                logger.info(f"[Paper {state.papers_inspected}] student {student.student_number} ({student.name}), paper {paper.paper_id}")
                try:
                    await self._process_paper(plan, student, paper, state)
                except PersistenceError as e:
                    e.partial_result = self._build_result(exam_id, state, interrupted_by=e.message)
                    raise

        return self._build_result(exam_id, state)

    async def _process_paper(self, plan: AnalysisPlan, student: Student, paper: Paper, state: _RunState):
        sid = student.student_id
        try:
            with scratch_image(paper.image_base64) as path:
                image_bytes = await asyncio.to_thread(normalize_for_recognition, path)
                result = await self.recognition_client.analyze(image_bytes, student.student_number)

                if isinstance(result, RecognitionFailure):
                    state.failed_papers += 1
                    state.note("upstream_error", sid, result.reason, paper.paper_id)
                    return

                outcome = reconcile(result, student.student_number, sid, plan.questions)
                for message in outcome.unknown_questions:
                    state.note("unknown_question", sid, message, paper.paper_id)
                for message in outcome.duplicate_questions:
                    state.note("duplicate_question", sid, message, paper.paper_id)
                for message in outcome.clipped:
                    state.note("clipped", sid, message, paper.paper_id)

                saved = await self.score_store.save_validated(plan.exam.exam_id, plan.teacher_id, outcome.scores)
                state.scores_saved += saved
                logger.info(f"Saved {saved} score(s) for student {student.student_number} from paper {paper.paper_id}")
        except PersistenceError:
            raise
        except ImageDecodeError as e:
            state.failed_papers += 1
            state.note("decode_error", sid, str(e), paper.paper_id)
        except ConsistencyError as e:
            state.discarded_papers += 1
            state.note("identity_mismatch", sid, e.message, paper.paper_id)
        except Exception as e:
            logger.error(f"Unexpected error on paper {paper.paper_id}: {e}", exc_info=True)
            state.failed_papers += 1
            state.note("unexpected_error", sid, f"{type(e).__name__}: {e}", paper.paper_id)

    def _build_result(self, exam_id: str, state: _RunState, interrupted_by: Optional[str] = None) -> AnalysisRunResult:
        inspected = f"{state.students_inspected} student(s) and {state.papers_inspected} paper(s) inspected"
        success = state.scores_saved > 0 and interrupted_by is None

        if interrupted_by is not None:
            message = (
                f"Analysis stopped by a score store failure: {inspected}, "
                f"{state.scores_saved} score(s) saved before the failure. {interrupted_by}"
            )
            logger.error(f"=== ANALYSIS ABORTED === Exam {exam_id}: {message}")
        elif success:
            message = f"Analysis finished: {inspected}, {state.scores_saved} score(s) saved."
            if state.discarded_papers:
                message += f" {state.discarded_papers} paper(s) discarded because the identity did not match."
            if state.failed_papers:
                message += f" {state.failed_papers} paper(s) could not be read."
            logger.info(f"=== ANALYSIS DONE === Exam {exam_id}: {message}")
        else:
            message = f"No usable scores were produced: {inspected}, 0 scores saved."
            reasons = self._failure_reasons(state.diagnostics)
            if reasons:
                message += " " + reasons
            logger.warning(f"=== ANALYSIS FAILED === Exam {exam_id}: {message}")

        return AnalysisRunResult(
            exam_id=exam_id,
            success=success,
            message=message,
            students_inspected=state.students_inspected,
            papers_inspected=state.papers_inspected,
            scores_saved=state.scores_saved,
            discarded_papers=state.discarded_papers,
            failed_papers=state.failed_papers,
            diagnostics=state.diagnostics,
        )

    @staticmethod
    def _failure_reasons(diagnostics: List[PaperDiagnostic]) -> str:
        labels = {
            "no_papers": "student(s) had no uploaded paper",
            "upstream_error": "paper(s) failed recognition",
            "identity_mismatch": "paper(s) showed a different student identity",
            "decode_error": "paper(s) could not be decoded",
            "unknown_question": "score(s) referred to unknown questions",
            "duplicate_question": "score(s) repeated a question already read",
            "unknown_student": "selected student(s) were not on the roster",
            "load_error": "student(s) whose papers could not be loaded",
            "unexpected_error": "paper(s) hit an unexpected error",
        }
        counts: Dict[str, int] = {}
        for diag in diagnostics:
            counts[diag.kind] = counts.get(diag.kind, 0) + 1
        parts = [f"{counts[kind]} {label}" for kind, label in labels.items() if counts.get(kind)]
        if not parts:
            return "Recognized papers contained no readable scores."
        return "Reasons: " + ", ".join(parts) + "."


async def run_analysis_job(db, runner: AnalysisRunner, plan: AnalysisPlan, job_id: str, holder: str):
    """Background task body: execute a prepared plan, record the outcome, release the lease."""
    exam_id = plan.exam.exam_id
    try:
        await db.analysis_jobs.update_one(
            {"job_id": job_id},
            {"$set": {"status": "processing", "updated_at": datetime.now(timezone.utc).isoformat()}}
        )
        result = await runner.execute(plan)
        await db.analysis_jobs.update_one(
            {"job_id": job_id},
            {"$set": {
                "status": "completed" if result.success else "failed",
                "result": result.model_dump(),
                "summary": result.summary,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }}
        )
    except Exception as e:
        logger.error(f"Analysis job {job_id} for exam {exam_id} crashed: {e}", exc_info=True)
        update = {
            "status": "failed",
            "error": str(e),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        partial = getattr(e, "partial_result", None)
        if partial is not None:
            update["result"] = partial.model_dump()
            update["summary"] = partial.summary
        await db.analysis_jobs.update_one({"job_id": job_id}, {"$set": update})
    finally:
        await runner.lease.release(exam_id, holder)
