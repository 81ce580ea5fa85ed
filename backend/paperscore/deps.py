"""
FastAPI dependencies - get_current_user, get_current_teacher, service wiring.
"""

from fastapi import Request, HTTPException, Depends
from datetime import datetime, timezone

from .database import get_db
from .models.user import User
from .services.analysis import AnalysisRunner
from .services.score_store import ScoreStore


async def get_current_user(request: Request, db=Depends(get_db)) -> User:
    """Resolve the caller from the session cookie or a Bearer token."""
    session_token = request.cookies.get("session_token")

    if not session_token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            session_token = auth_header.split(" ")[1]

    if not session_token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = await db.user_sessions.find_one({"session_token": session_token}, {"_id": 0})
    if not session:
        raise HTTPException(status_code=401, detail="Invalid session")

    expires_at = session.get("expires_at")
    if isinstance(expires_at, str):
        expires_at = datetime.fromisoformat(expires_at)
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < datetime.now(timezone.utc):
            raise HTTPException(status_code=401, detail="Session expired")

    user = await db.users.find_one({"user_id": session["user_id"]}, {"_id": 0})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return User(**user)


async def get_current_teacher(user: User = Depends(get_current_user)) -> User:
    if user.role != "teacher":
        raise HTTPException(status_code=403, detail="Only teachers can manage exam scores")
    return user


def get_recognition_client(request: Request):
    """The process-wide client created in the app lifespan."""
    client = getattr(request.app.state, "recognition_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Recognition service is not configured")
    return client


def get_score_store(db=Depends(get_db)) -> ScoreStore:
    return ScoreStore(db)


def get_analysis_runner(db=Depends(get_db), recognition_client=Depends(get_recognition_client)) -> AnalysisRunner:
    return AnalysisRunner(db, recognition_client)
