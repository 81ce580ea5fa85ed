"""Recognition results and analysis-run Pydantic models"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union


class RecognitionSuccess(BaseModel):
    scores: Dict[str, float]  # question number (as written) -> raw score
    identity: str
    note: str = ""


class RecognitionFailure(BaseModel):
    reason: str
    attempts: int = 1


RecognitionResult = Union[RecognitionSuccess, RecognitionFailure]


class PaperDiagnostic(BaseModel):
    """One problem met while processing a student or one of their papers"""
    kind: str  # no_papers, decode_error, upstream_error, identity_mismatch, unknown_question, duplicate_question, clipped, unknown_student
    student_id: str
    paper_id: Optional[str] = None
    message: str


class AnalyzeSelectedRequest(BaseModel):
    student_ids: List[str] = Field(min_length=1)


class AnalysisRunResult(BaseModel):
    exam_id: str
    success: bool
    message: str
    students_inspected: int = 0
    papers_inspected: int = 0
    scores_saved: int = 0
    discarded_papers: int = 0
    failed_papers: int = 0
    diagnostics: List[PaperDiagnostic] = []

    @property
    def summary(self) -> dict:
        """Condensed view for end users; full diagnostics stay with operators."""
        counts: Dict[str, int] = {}
        for diag in self.diagnostics:
            counts[diag.kind] = counts.get(diag.kind, 0) + 1
        return {
            "success": self.success,
            "message": self.message,
            "issues": counts,
        }
