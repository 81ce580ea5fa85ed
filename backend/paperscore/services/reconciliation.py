"""
Reconciliation - cross-check a recognition result against the expected student
and the exam's questions before anything reaches the score store.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from paperscore.config import logger
from paperscore.errors import ConsistencyError
from paperscore.models.analysis import RecognitionSuccess
from paperscore.models.exam import Question
from paperscore.models.score import ValidatedScore


@dataclass
class ReconciliationOutcome:
    scores: List[ValidatedScore] = field(default_factory=list)
    unknown_questions: List[str] = field(default_factory=list)
    clipped: List[str] = field(default_factory=list)
    duplicate_questions: List[str] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return self.unknown_questions + self.duplicate_questions + self.clipped


QUESTION_KEY_RE = re.compile(r"\s*(\d+)(?:\.0+)?\s*", re.ASCII)


def normalize_identity(identity: Optional[str]) -> str:
    return (identity or "").strip()


def clip_score(raw: float, points: float) -> float:
    return min(max(raw, 0.0), float(points))


def parse_question_number(key: str) -> Optional[int]:
    """Map a score key such as "3" or "3.0" to a question number; "Q3", "3a" or "1e1" map to None."""
    if not isinstance(key, str):
        return None
    match = QUESTION_KEY_RE.fullmatch(key)
    if not match:
        return None
    return int(match.group(1))


def reconcile(
    result: RecognitionSuccess,
    expected_identity: str,
    student_id: str,
    questions: List[Question],
) -> ReconciliationOutcome:
    """
    Turn a successful recognition into validated scores for one student.

    Raises ConsistencyError when the identity written on the paper is not the
    expected one; none of that paper's scores may be used in that case.
    """
    returned = normalize_identity(result.identity)
    expected = normalize_identity(expected_identity)
    if returned != expected:
        logger.warning(
            f"🔒 SECURITY: identity mismatch for student {student_id}: "
            f"expected '{expected}', paper shows '{returned}' - discarding {len(result.scores)} score(s)"
        )
        raise ConsistencyError(
            f"Paper identity '{returned}' does not match expected '{expected}'; all scores discarded"
        )

    by_number: Dict[int, Question] = {q.question_number: q for q in questions}
    outcome = ReconciliationOutcome()
    seen: Set[int] = set()

    for key, raw in result.scores.items():
        number = parse_question_number(key)
        question = by_number.get(number) if number is not None else None
        if question is None:
            message = f"Question '{key}' is not part of this exam; score {raw} discarded"
            logger.warning(f"Student {student_id}: {message}")
            outcome.unknown_questions.append(message)
            continue

        # First reading of a question wins; "1", "1.0" and "01" are one cell
        if number in seen:
            message = f"Question '{key}' was already read as Q{number}; score {raw} discarded"
            logger.warning(f"Student {student_id}: {message}")
            outcome.duplicate_questions.append(message)
            continue
        seen.add(number)

        final = clip_score(raw, question.points)
        if final != raw:
            message = f"Q{question.question_number}: score {raw} clipped to {final} (max {question.points})"
            logger.info(f"Student {student_id}: {message}")
            outcome.clipped.append(message)

        outcome.scores.append(ValidatedScore(
            student_id=student_id,
            question_id=question.question_id,
            question_number=question.question_number,
            score=final,
        ))

    return outcome
