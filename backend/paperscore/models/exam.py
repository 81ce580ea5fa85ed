"""Exam, roster and paper Pydantic models"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, timezone


class Exam(BaseModel):
    model_config = ConfigDict(extra="ignore")
    exam_id: str
    title: str
    teacher_id: str
    class_id: str


class Question(BaseModel):
    model_config = ConfigDict(extra="ignore")
    question_id: str
    exam_id: str
    question_number: int = Field(ge=1)
    points: float = Field(ge=0)
    outcome: Optional[str] = None  # learning outcome label


class ClassInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")
    class_id: str
    name: str
    teacher_id: Optional[str] = None


class Student(BaseModel):
    model_config = ConfigDict(extra="ignore")
    student_id: str
    class_id: str
    name: str
    student_number: str  # roster number, also the identity token written on the paper


class Paper(BaseModel):
    """One uploaded page of a student's answer sheet"""
    model_config = ConfigDict(extra="ignore")
    paper_id: str
    exam_id: str
    student_id: str
    image_base64: str  # plain base64 or data URI
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
