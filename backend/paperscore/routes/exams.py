"""Exam routes - paper upload/delete and exam deletion with cascade."""

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File

from paperscore.database import get_db
from paperscore.deps import get_current_teacher
from paperscore.models.user import User
from paperscore.services.exam_data import add_paper, delete_exam_cascade, delete_paper, get_owned_exam
from paperscore.utils.images import ImageDecodeError, compress_upload
from paperscore.config import logger

router = APIRouter(tags=["exams"])


@router.post("/exams/{exam_id}/students/{student_id}/papers")
async def upload_paper(
    exam_id: str,
    student_id: str,
    file: UploadFile = File(...),
    user: User = Depends(get_current_teacher),
    db=Depends(get_db),
):
    """Upload one photographed page of a student's answer sheet"""
    exam = await get_owned_exam(db, exam_id, user.user_id)

    student = await db.students.find_one({"class_id": exam.class_id, "student_id": student_id}, {"_id": 0})
    if not student:
        raise HTTPException(status_code=404, detail="Student not found in this class")

    file_bytes = await file.read()
    if not file_bytes:
        raise HTTPException(status_code=400, detail="Please choose a file to upload")

    try:
        image_base64 = compress_upload(file_bytes)
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    paper = await add_paper(db, exam_id, student_id, image_base64)
    return {"message": "Paper uploaded", "paper_id": paper.paper_id}


@router.delete("/exams/{exam_id}/papers/{paper_id}")
async def remove_paper(exam_id: str, paper_id: str, user: User = Depends(get_current_teacher), db=Depends(get_db)):
    """Delete one paper; scores already recorded for the student are kept"""
    await get_owned_exam(db, exam_id, user.user_id)
    if not await delete_paper(db, exam_id, paper_id):
        raise HTTPException(status_code=404, detail="Paper not found")
    return {"message": "Paper deleted"}


@router.delete("/exams/{exam_id}")
async def delete_exam(exam_id: str, user: User = Depends(get_current_teacher), db=Depends(get_db)):
    """Delete an exam with its scores, questions, papers and analysis jobs"""
    await get_owned_exam(db, exam_id, user.user_id)

    lock = await db.analysis_locks.find_one({"_id": exam_id})
    if lock:
        raise HTTPException(status_code=409, detail="An analysis is running for this exam; try again when it finishes")

    summary = await delete_exam_cascade(db, exam_id)
    logger.info(f"Exam {exam_id} deleted by teacher {user.user_id}")
    return {"message": "Exam and all related data deleted", **summary}
