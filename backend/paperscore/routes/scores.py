"""Score routes - list, manual edit, bulk delete per student."""

from fastapi import APIRouter, Depends, HTTPException

from paperscore.database import get_db
from paperscore.deps import get_current_teacher, get_score_store
from paperscore.models.exam import Question
from paperscore.models.score import ManualScoreUpdate
from paperscore.models.user import User
from paperscore.services.exam_data import get_owned_exam
from paperscore.services.score_store import ScoreStore
from paperscore.utils.serialization import serialize_doc

router = APIRouter(tags=["scores"])


@router.get("/exams/{exam_id}/scores")
async def get_exam_scores(exam_id: str, user: User = Depends(get_current_teacher), db=Depends(get_db)):
    """All recorded score cells of an exam"""
    await get_owned_exam(db, exam_id, user.user_id)
    scores = await db.scores.find({"exam_id": exam_id}, {"_id": 0}).to_list(None)
    return {"exam_id": exam_id, "count": len(scores), "scores": serialize_doc(scores)}


@router.put("/exams/{exam_id}/scores")
async def update_score(
    exam_id: str,
    update: ManualScoreUpdate,
    user: User = Depends(get_current_teacher),
    db=Depends(get_db),
    store: ScoreStore = Depends(get_score_store),
):
    """Set one cell by hand, or remove it with {"kind": "absent"}"""
    exam = await get_owned_exam(db, exam_id, user.user_id)

    question_doc = await db.questions.find_one({"exam_id": exam_id, "question_id": update.question_id}, {"_id": 0})
    if not question_doc:
        raise HTTPException(status_code=404, detail="Question not found")

    student = await db.students.find_one({"class_id": exam.class_id, "student_id": update.student_id}, {"_id": 0})
    if not student:
        raise HTTPException(status_code=404, detail="Student not found in this class")

    stored = await store.set_manual_score(exam, Question(**question_doc), update.student_id, update.value)
    return {
        "message": "Score saved" if stored is not None else "Score removed",
        "score_id": store.score_key(exam_id, update.student_id, update.question_id),
        "score": stored,
    }


@router.delete("/exams/{exam_id}/students/{student_id}/scores")
async def delete_student_scores(
    exam_id: str,
    student_id: str,
    user: User = Depends(get_current_teacher),
    db=Depends(get_db),
    store: ScoreStore = Depends(get_score_store),
):
    """Remove every score of one student for this exam (before a clean re-grade)"""
    await get_owned_exam(db, exam_id, user.user_id)
    deleted = await store.delete_student_scores(exam_id, student_id)
    return {"message": f"Deleted {deleted} score(s)", "deleted_count": deleted}
