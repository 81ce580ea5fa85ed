"""
Aggregation engine - turns recorded scores into the exam report.

Pure computation: no database access, no clock, no randomness. The same
inputs always produce the same report, so exporters can rely on it.

A student is participating when at least one score is recorded for them.
Non-participants are listed (status not_taken) and counted in the roster
total but are left out of every average and percentage. For participants a
missing cell counts as 0 achieved out of the question's points.
"""

import math
from typing import Dict, List, Optional, Tuple

from paperscore.config import PASS_THRESHOLD
from paperscore.errors import ValidationError
from paperscore.models.exam import ClassInfo, Exam, Question, Student
from paperscore.models.report import (
    AggregationReport,
    ChartSeries,
    OutcomeStat,
    QuestionStat,
    ReportCharts,
    ReportStats,
    StudentResult,
    StudentStatus,
)

ScoreMap = Dict[Tuple[str, str], float]

WEAK_OUTCOME_THRESHOLD = 50.0


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


def _fmt(value: float) -> str:
    return f"{value:g}"


def _at_least(value: float, bound: float) -> bool:
    # Tolerance covers float summation noise only (0.1 + 0.2 vs 0.3)
    return value >= bound or math.isclose(value, bound, rel_tol=1e-9, abs_tol=1e-9)


def _ratio(outcome: OutcomeStat) -> float:
    return outcome.achieved / outcome.possible if outcome.possible > 0 else 0.0


def build_student_results(
    questions: List[Question],
    students: List[Student],
    scores: ScoreMap,
    pass_threshold: float,
) -> List[StudentResult]:
    max_total = sum(q.points for q in questions)
    pass_mark = pass_threshold * max_total
    results = []

    for student in students:
        row: List[Optional[float]] = [scores.get((student.student_id, q.question_id)) for q in questions]
        recorded = [s for s in row if s is not None]

        if not recorded:
            results.append(StudentResult(
                student_id=student.student_id,
                name=student.name,
                student_number=student.student_number,
                scores=row,
                status=StudentStatus.NOT_TAKEN,
            ))
            continue

        total = sum(recorded)
        results.append(StudentResult(
            student_id=student.student_id,
            name=student.name,
            student_number=student.student_number,
            scores=row,
            total_score=round(total, 2),
            percentage=_pct(total, max_total),
            status=StudentStatus.PASS if _at_least(total, pass_mark) else StudentStatus.FAIL,
        ))

    return results


def build_question_stats(questions: List[Question], participants: List[str], scores: ScoreMap) -> List[QuestionStat]:
    stats = []
    for q in questions:
        achieved = sum(scores.get((sid, q.question_id), 0.0) for sid in participants)
        count = len(participants)
        stats.append(QuestionStat(
            question_id=q.question_id,
            question_number=q.question_number,
            points=q.points,
            outcome=q.outcome,
            average_score=round(achieved / count, 2) if count else 0.0,
            success_percentage=_pct(achieved, q.points * count),
        ))
    return stats


def build_outcome_stats(questions: List[Question], participants: List[str], scores: ScoreMap) -> List[OutcomeStat]:
    """Per-outcome success, in order of the outcome's first question."""
    grouped: Dict[str, List[Question]] = {}
    for q in questions:
        label = (q.outcome or "").strip()
        if label:
            grouped.setdefault(label, []).append(q)

    stats = []
    for label, group in grouped.items():
        achieved = sum(scores.get((sid, q.question_id), 0.0) for q in group for sid in participants)
        possible = sum(q.points for q in group) * len(participants)
        stats.append(OutcomeStat(
            outcome=label,
            question_numbers=[q.question_number for q in group],
            achieved=achieved,
            possible=possible,
            success_percentage=_pct(achieved, possible),
        ))
    return stats


def build_narrative(stats: ReportStats, outcomes: List[OutcomeStat]) -> str:
    text = (
        f"{stats.participating_students} of {stats.total_students} registered students took the exam. "
        f"{stats.successful_students} passed and {stats.unsuccessful_students} failed, "
        f"a pass rate of {_fmt(stats.overall_success_percentage)}% among participants."
    )

    if stats.participating_students == 0:
        return text + " No scores have been recorded yet, so outcomes could not be evaluated."
    if not outcomes:
        return text + " No learning outcomes are linked to the questions of this exam."

    # Compare exact ratios; the rounded percentages are for display only
    worst = min(_ratio(o) for o in outcomes)
    if worst * 100 < WEAK_OUTCOME_THRESHOLD:
        weakest = [o for o in outcomes if math.isclose(_ratio(o), worst, rel_tol=1e-9, abs_tol=1e-12)]
        listed = ", ".join(f'"{o.outcome}"' for o in weakest)
        noun = "outcome" if len(weakest) == 1 else "outcomes"
        return text + (
            f" The weakest {noun} {listed} reached only {_fmt(weakest[0].success_percentage)}% success;"
            f" these topics should be revisited with the class."
        )
    return text + " All learning outcomes were achieved at a satisfactory level."


def build_charts(per_student: List[StudentResult], per_question: List[QuestionStat],
                 per_outcome: List[OutcomeStat]) -> ReportCharts:
    participants = [r for r in per_student if r.status != StudentStatus.NOT_TAKEN]
    return ReportCharts(
        question_success=ChartSeries(
            labels=[f"Q{q.question_number}" for q in per_question],
            data=[q.success_percentage for q in per_question],
        ),
        outcome_success=ChartSeries(
            labels=[o.outcome for o in per_outcome],
            data=[o.success_percentage for o in per_outcome],
        ),
        student_scores=ChartSeries(
            labels=[r.name for r in participants],
            data=[r.percentage for r in participants],
        ),
    )


def build_report(
    exam: Exam,
    questions: List[Question],
    students: List[Student],
    scores: ScoreMap,
    class_info: Optional[ClassInfo] = None,
    pass_threshold: float = PASS_THRESHOLD,
) -> AggregationReport:
    """
    Build the full report for one exam.

    Raises ValidationError when there are no questions or no students, since
    every percentage would be undefined.
    """
    if not questions:
        raise ValidationError("Cannot build a report for an exam without questions")
    if not students:
        raise ValidationError("Cannot build a report for a class without students")
    if not 0 <= pass_threshold <= 1:
        raise ValidationError(f"Pass threshold must be between 0 and 1, got {pass_threshold}")

    questions = sorted(questions, key=lambda q: q.question_number)
    question_ids = {q.question_id for q in questions}
    student_ids = {s.student_id for s in students}
    # Cells of deleted questions or students who left the class are ignored
    scores = {k: v for k, v in scores.items() if k[0] in student_ids and k[1] in question_ids}

    per_student = build_student_results(questions, students, scores, pass_threshold)
    participants = [r.student_id for r in per_student if r.status != StudentStatus.NOT_TAKEN]
    passed = sum(1 for r in per_student if r.status == StudentStatus.PASS)
    failed = sum(1 for r in per_student if r.status == StudentStatus.FAIL)
    max_total = sum(q.points for q in questions)

    stats = ReportStats(
        total_students=len(students),
        participating_students=len(participants),
        successful_students=passed,
        unsuccessful_students=failed,
        overall_success_percentage=_pct(passed, len(participants)),
        max_total=max_total,
        pass_mark=round(pass_threshold * max_total, 2),
    )

    per_question = build_question_stats(questions, participants, scores)
    per_outcome = build_outcome_stats(questions, participants, scores)

    return AggregationReport(
        exam=exam,
        class_info=class_info,
        students=students,
        questions=questions,
        per_student=per_student,
        per_question=per_question,
        per_outcome=per_outcome,
        stats=stats,
        narrative=build_narrative(stats, per_outcome),
        charts=build_charts(per_student, per_question, per_outcome),
    )
