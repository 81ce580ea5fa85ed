"""Aggregation report Pydantic models (derived, never persisted)"""

from enum import Enum
from pydantic import BaseModel
from typing import List, Optional

from .exam import Exam, ClassInfo, Question, Student


class StudentStatus(str, Enum):
    NOT_TAKEN = "not_taken"
    PASS = "pass"
    FAIL = "fail"


class StudentResult(BaseModel):
    student_id: str
    name: str
    student_number: str
    scores: List[Optional[float]]  # question order; None where no score is recorded
    total_score: Optional[float] = None  # None when the student did not take the exam
    percentage: Optional[float] = None
    status: StudentStatus


class QuestionStat(BaseModel):
    question_id: str
    question_number: int
    points: float
    outcome: Optional[str] = None
    average_score: float
    success_percentage: float


class OutcomeStat(BaseModel):
    outcome: str
    question_numbers: List[int]
    achieved: float
    possible: float
    success_percentage: float


class ReportStats(BaseModel):
    total_students: int
    participating_students: int
    successful_students: int
    unsuccessful_students: int
    overall_success_percentage: float
    max_total: float
    pass_mark: float


class ChartSeries(BaseModel):
    labels: List[str]
    data: List[float]


class ReportCharts(BaseModel):
    question_success: ChartSeries
    outcome_success: ChartSeries
    student_scores: ChartSeries  # participants' totals scaled to 100


class AggregationReport(BaseModel):
    exam: Exam
    class_info: Optional[ClassInfo] = None
    students: List[Student]
    questions: List[Question]
    per_student: List[StudentResult]
    per_question: List[QuestionStat]
    per_outcome: List[OutcomeStat]
    stats: ReportStats
    narrative: str
    charts: ReportCharts
