"""Shared fixtures: in-memory MongoDB, seeded exams, fake recognition and image payloads."""

import base64
import io
import os
import sys

import pytest
from mongomock_motor import AsyncMongoMockClient
from PIL import Image

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "backend"))

from paperscore.models.analysis import RecognitionFailure, RecognitionSuccess  # noqa: E402

TEACHER_ID = "teacher_1"
EXAM_ID = "exam_1"
CLASS_ID = "class_1"


def make_image_base64(width=60, height=40, as_data_uri=True) -> str:
    img = Image.new("RGB", (width, height), "white")
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG")
    b64 = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/jpeg;base64,{b64}" if as_data_uri else b64


async def seed_exam(db, questions=((1, 5, None), (2, 10, None)), students=(("st_1", "Ada Lovelace", "S1"),),
                    papers_per_student=1, exam_id=EXAM_ID, class_id=CLASS_ID, teacher_id=TEACHER_ID):
    """Insert an exam with questions (number, points, outcome), a class roster and papers."""
    await db.exams.insert_one({"exam_id": exam_id, "title": "Midterm", "teacher_id": teacher_id, "class_id": class_id})
    await db.classes.insert_one({"class_id": class_id, "name": "9-A", "teacher_id": teacher_id})
    for number, points, outcome in questions:
        await db.questions.insert_one({
            "question_id": f"{exam_id}_q{number}",
            "exam_id": exam_id,
            "question_number": number,
            "points": points,
            "outcome": outcome,
        })
    for student_id, name, number in students:
        await db.students.insert_one({"student_id": student_id, "class_id": class_id, "name": name, "student_number": number})
        for page in range(papers_per_student):
            await db.papers.insert_one({
                "paper_id": f"paper_{student_id}_{page}",
                "exam_id": exam_id,
                "student_id": student_id,
                "image_base64": make_image_base64(),
                "uploaded_at": f"2026-01-01T00:00:{page:02d}+00:00",
            })


class FakeRecognitionClient:
    """Returns a configured result per expected identity and records every call."""

    def __init__(self, results=None, default=None):
        self.results = results or {}
        self.default = default or RecognitionFailure(reason="no scripted result")
        self.calls = []

    async def analyze(self, image_bytes, expected_identity):
        self.calls.append(expected_identity)
        result = self.results.get(expected_identity, self.default)
        if isinstance(result, Exception):
            raise result
        if isinstance(result, list):
            return result.pop(0)
        return result


def success(identity, scores, note=""):
    return RecognitionSuccess(identity=identity, scores={str(k): float(v) for k, v in scores.items()}, note=note)


class SleepRecorder:

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def db():
    return AsyncMongoMockClient()["paperscore_test"]


@pytest.fixture
def sleeper():
    return SleepRecorder()
