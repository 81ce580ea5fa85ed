"""
Score store - idempotent per-(exam, student, question) cells over the `scores` collection.

Each cell is one document keyed by "{exam_id}_{student_id}_{question_id}".
Writes are single-document merges, so re-running an analysis overwrites cells
in place and never duplicates them.
"""

import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pymongo.errors import PyMongoError

from paperscore.config import logger
from paperscore.errors import PersistenceError, ValidationError
from paperscore.models.exam import Exam, Question
from paperscore.models.score import Absent, Present, ScoreValue, ValidatedScore


class ScoreStore:

    def __init__(self, db):
        self.db = db
        self.collection = db.scores

    @staticmethod
    def score_key(exam_id: str, student_id: str, question_id: str) -> str:
        return f"{exam_id}_{student_id}_{question_id}"

    async def ensure_indexes(self):
        await self.collection.create_index("score_id", unique=True)
        await self.collection.create_index([("exam_id", 1), ("student_id", 1)])

    async def upsert_score(
        self,
        exam_id: str,
        student_id: str,
        question_id: str,
        score: float,
        teacher_id: str,
        source: str = "recognition",
    ):
        """Merge-write one cell: overwrite value and timestamp, keep any other fields."""
        score_id = self.score_key(exam_id, student_id, question_id)
        try:
            await self.collection.update_one(
                {"score_id": score_id},
                {"$set": {
                    "score_id": score_id,
                    "exam_id": exam_id,
                    "student_id": student_id,
                    "question_id": question_id,
                    "score": score,
                    "teacher_id": teacher_id,
                    "source": source,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }},
                upsert=True,
            )
        except PyMongoError as e:
            logger.error(f"Failed to save score {score_id}: {e}")
            raise PersistenceError(f"Failed to save score {score_id}: {e}")

    async def save_validated(self, exam_id: str, teacher_id: str, scores: List[ValidatedScore]) -> int:
        """Persist scores that already passed reconciliation. Returns how many distinct cells were written."""
        for item in scores:
            await self.upsert_score(exam_id, item.student_id, item.question_id, item.score, teacher_id)
        return len({(item.student_id, item.question_id) for item in scores})

    async def set_manual_score(self, exam: Exam, question: Question, student_id: str, value: ScoreValue) -> Optional[float]:
        """
        Teacher edit of a single cell.

        Present(v) is range-checked against the question again, since this
        caller never went through reconciliation. Absent removes the cell.
        Returns the stored value, or None when the cell was removed.
        """
        if question.exam_id != exam.exam_id:
            raise ValidationError(f"Question {question.question_id} does not belong to exam {exam.exam_id}")

        if isinstance(value, Absent):
            await self.delete_score(exam.exam_id, student_id, question.question_id)
            return None

        if not isinstance(value, Present):
            raise ValidationError("Score value must be present or absent")
        if not math.isfinite(value.value) or value.value < 0 or value.value > question.points:
            raise ValidationError(
                f"Score for Q{question.question_number} must be between 0 and {question.points}, got {value.value}"
            )

        await self.upsert_score(
            exam.exam_id, student_id, question.question_id, value.value, exam.teacher_id, source="manual"
        )
        return value.value

    async def delete_score(self, exam_id: str, student_id: str, question_id: str) -> bool:
        score_id = self.score_key(exam_id, student_id, question_id)
        try:
            result = await self.collection.delete_one({"score_id": score_id})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to delete score {score_id}: {e}")
        return result.deleted_count > 0

    async def delete_student_scores(self, exam_id: str, student_id: str) -> int:
        """Remove every cell of one student for one exam (clean re-grade)."""
        try:
            result = await self.collection.delete_many({"exam_id": exam_id, "student_id": student_id})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to delete scores of student {student_id}: {e}")
        logger.info(f"Deleted {result.deleted_count} score(s) of student {student_id} for exam {exam_id}")
        return result.deleted_count

    async def delete_exam_scores(self, exam_id: str) -> int:
        try:
            result = await self.collection.delete_many({"exam_id": exam_id})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to delete scores of exam {exam_id}: {e}")
        return result.deleted_count

    async def get_exam_scores(self, exam_id: str) -> Dict[Tuple[str, str], float]:
        """All recorded cells of an exam as {(student_id, question_id): score}."""
        try:
            docs = await self.collection.find(
                {"exam_id": exam_id},
                {"_id": 0, "student_id": 1, "question_id": 1, "score": 1}
            ).to_list(None)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to load scores of exam {exam_id}: {e}")
        return {(d["student_id"], d["question_id"]): d["score"] for d in docs}
