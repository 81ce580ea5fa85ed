"""Pydantic models for PaperScore application"""

from .user import User
from .exam import Exam, Question, ClassInfo, Student, Paper
from .score import (
    Score,
    Present,
    Absent,
    ScoreValue,
    ManualScoreUpdate,
    ValidatedScore,
)
from .analysis import (
    RecognitionSuccess,
    RecognitionFailure,
    RecognitionResult,
    PaperDiagnostic,
    AnalyzeSelectedRequest,
    AnalysisRunResult,
)
from .report import (
    StudentStatus,
    StudentResult,
    QuestionStat,
    OutcomeStat,
    ReportStats,
    ChartSeries,
    ReportCharts,
    AggregationReport,
)
