"""Report routes - aggregated exam statistics for exporters and dashboards."""

from fastapi import APIRouter, Depends

from paperscore.database import get_db
from paperscore.deps import get_current_teacher, get_score_store
from paperscore.models.user import User
from paperscore.services.aggregation import build_report
from paperscore.services.exam_data import get_class_info, get_owned_exam, list_questions, list_students
from paperscore.services.score_store import ScoreStore

router = APIRouter(tags=["reports"])


@router.get("/exams/{exam_id}/report")
async def get_exam_report(
    exam_id: str,
    user: User = Depends(get_current_teacher),
    db=Depends(get_db),
    store: ScoreStore = Depends(get_score_store),
):
    """Per-student, per-question and per-outcome statistics with a narrative summary"""
    exam = await get_owned_exam(db, exam_id, user.user_id)
    questions = await list_questions(db, exam_id)
    students = await list_students(db, exam.class_id)
    class_info = await get_class_info(db, exam.class_id)
    scores = await store.get_exam_scores(exam_id)

    report = build_report(exam, questions, students, scores, class_info=class_info)
    return report.model_dump(mode="json")
