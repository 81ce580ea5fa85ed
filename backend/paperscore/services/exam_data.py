"""
Exam, roster and paper lookups over MongoDB.

Roster/question CRUD lives elsewhere; this module only reads what the
analysis pipeline and the report need, plus paper upload/delete and the
exam cascade delete.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from paperscore.config import logger
from paperscore.errors import AuthorizationError, NotFoundError
from paperscore.models.exam import ClassInfo, Exam, Paper, Question, Student
from paperscore.services.score_store import ScoreStore


async def get_owned_exam(db, exam_id: str, teacher_id: str) -> Exam:
    """Load an exam and check the caller owns it."""
    doc = await db.exams.find_one({"exam_id": exam_id}, {"_id": 0})
    if not doc:
        raise NotFoundError(f"Exam {exam_id} not found")
    if doc.get("teacher_id") != teacher_id:
        logger.warning(f"Teacher {teacher_id} tried to access exam {exam_id} owned by {doc.get('teacher_id')}")
        raise AuthorizationError("You do not have permission to access this exam")
    return Exam(**doc)


async def list_questions(db, exam_id: str) -> List[Question]:
    docs = await db.questions.find({"exam_id": exam_id}, {"_id": 0}).to_list(None)
    return sorted((Question(**d) for d in docs), key=lambda q: q.question_number)


async def get_class_info(db, class_id: str) -> Optional[ClassInfo]:
    doc = await db.classes.find_one({"class_id": class_id}, {"_id": 0})
    return ClassInfo(**doc) if doc else None


async def list_students(db, class_id: str) -> List[Student]:
    docs = await db.students.find({"class_id": class_id}, {"_id": 0}).to_list(None)
    return sorted((Student(**d) for d in docs), key=lambda s: (s.student_number, s.name))


async def list_papers(db, exam_id: str, student_id: str) -> List[Paper]:
    docs = await db.papers.find(
        {"exam_id": exam_id, "student_id": student_id},
        {"_id": 0}
    ).sort("uploaded_at", 1).to_list(None)
    return [Paper(**d) for d in docs]


async def add_paper(db, exam_id: str, student_id: str, image_base64: str) -> Paper:
    paper = Paper(
        paper_id=f"paper_{uuid.uuid4().hex[:12]}",
        exam_id=exam_id,
        student_id=student_id,
        image_base64=image_base64,
    )
    doc = paper.model_dump()
    doc["uploaded_at"] = paper.uploaded_at.isoformat()
    await db.papers.insert_one(doc)
    logger.info(f"Stored paper {paper.paper_id} for student {student_id} in exam {exam_id}")
    return paper


async def delete_paper(db, exam_id: str, paper_id: str) -> bool:
    """Remove one paper. Scores already derived from it are kept."""
    result = await db.papers.delete_one({"exam_id": exam_id, "paper_id": paper_id})
    return result.deleted_count > 0


async def delete_exam_cascade(db, exam_id: str) -> dict:
    """Delete an exam together with its scores, questions, papers and analysis jobs."""
    deleted_scores = await ScoreStore(db).delete_exam_scores(exam_id)
    questions = await db.questions.delete_many({"exam_id": exam_id})
    papers = await db.papers.delete_many({"exam_id": exam_id})
    jobs = await db.analysis_jobs.delete_many({"exam_id": exam_id})
    await db.exams.delete_one({"exam_id": exam_id})

    logger.info(
        f"Deleted exam {exam_id}: {deleted_scores} scores, {questions.deleted_count} questions, "
        f"{papers.deleted_count} papers, {jobs.deleted_count} jobs"
    )
    return {
        "deleted_scores": deleted_scores,
        "deleted_questions": questions.deleted_count,
        "deleted_papers": papers.deleted_count,
        "deleted_jobs": jobs.deleted_count,
        "deleted_at": datetime.now(timezone.utc).isoformat(),
    }
