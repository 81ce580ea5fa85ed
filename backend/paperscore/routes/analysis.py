"""Analysis routes - start a full or selected-student analysis, poll job status."""

from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timezone
from typing import List, Optional
import uuid
import asyncio

from paperscore.database import get_db
from paperscore.deps import get_current_teacher, get_analysis_runner
from paperscore.models.analysis import AnalyzeSelectedRequest
from paperscore.models.user import User
from paperscore.services.analysis import AnalysisRunner, run_analysis_job
from paperscore.utils.serialization import serialize_doc
from paperscore.config import logger

router = APIRouter(tags=["analysis"])

# Strong references so running jobs are not garbage collected mid-run
_running_jobs = set()


async def start_analysis_job(db, runner: AnalysisRunner, exam_id: str, teacher_id: str,
                             student_ids: Optional[List[str]] = None) -> dict:
    """Check preconditions synchronously, then hand the run to a background task."""
    plan = await runner.prepare(exam_id, teacher_id, student_ids)

    job_id = f"job_{uuid.uuid4().hex[:12]}"
    await runner.lease.acquire(exam_id, job_id)

    try:
        await db.analysis_jobs.insert_one({
            "job_id": job_id,
            "exam_id": exam_id,
            "teacher_id": teacher_id,
            "mode": "all" if student_ids is None else "selected",
            "student_ids": [s.student_id for s in plan.students],
            "status": "pending",
            "created_at": datetime.now(timezone.utc).isoformat(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })
    except Exception:
        await runner.lease.release(exam_id, job_id)
        raise

    task = asyncio.create_task(run_analysis_job(db, runner, plan, job_id, job_id))
    _running_jobs.add(task)
    task.add_done_callback(_running_jobs.discard)

    logger.info(f"Analysis job {job_id} started for exam {exam_id} ({len(plan.students)} student(s))")
    return {
        "job_id": job_id,
        "status": "pending",
        "total_students": len(plan.students),
        "message": f"Analysis started for {len(plan.students)} student(s). Use job_id to check progress.",
    }


@router.post("/exams/{exam_id}/analyze")
async def analyze_exam(
    exam_id: str,
    user: User = Depends(get_current_teacher),
    db=Depends(get_db),
    runner: AnalysisRunner = Depends(get_analysis_runner),
):
    """Analyze the papers of every student in the exam's class"""
    return await start_analysis_job(db, runner, exam_id, user.user_id)


@router.post("/exams/{exam_id}/analyze-selected")
async def analyze_selected_students(
    exam_id: str,
    request: AnalyzeSelectedRequest,
    user: User = Depends(get_current_teacher),
    db=Depends(get_db),
    runner: AnalysisRunner = Depends(get_analysis_runner),
):
    """Re-analyze only the given students, e.g. after a paper was replaced"""
    return await start_analysis_job(db, runner, exam_id, user.user_id, request.student_ids)


@router.get("/analysis-jobs/{job_id}")
async def get_analysis_job(job_id: str, user: User = Depends(get_current_teacher), db=Depends(get_db)):
    """Poll analysis job status"""
    job = await db.analysis_jobs.find_one({"job_id": job_id}, {"_id": 0})
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if job["teacher_id"] != user.user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return serialize_doc(job)
