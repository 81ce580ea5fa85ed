"""Score-related Pydantic models"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Annotated, Literal, Union


class Score(BaseModel):
    model_config = ConfigDict(extra="ignore")
    score_id: str  # "{exam_id}_{student_id}_{question_id}"
    exam_id: str
    student_id: str
    question_id: str
    score: float
    teacher_id: str
    source: str = "recognition"  # recognition, manual
    updated_at: str


class Present(BaseModel):
    kind: Literal["present"] = "present"
    value: float


class Absent(BaseModel):
    kind: Literal["absent"] = "absent"


# A manual edit either sets a value (zero included) or removes the cell
ScoreValue = Annotated[Union[Present, Absent], Field(discriminator="kind")]


class ManualScoreUpdate(BaseModel):
    student_id: str
    question_id: str
    value: ScoreValue


class ValidatedScore(BaseModel):
    """A recognized score that passed identity and range checks"""
    student_id: str
    question_id: str
    question_number: int
    score: float
