"""
Recognition client - one exam-paper image in, the handwritten per-question scores out.

The vision model is asked for a strict JSON object:

    {"identity": "<roster number>", "scores": {"<question number>": <number>}, "note": "<text>"}

Anything that does not match that shape exactly is treated as a failed
attempt. A failed attempt is retried once after a fixed delay; the second
failure is returned to the caller as a RecognitionFailure for that paper only.
"""

import asyncio
import json
import math
from typing import Dict, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from paperscore.config import logger
from paperscore.errors import UpstreamServiceError
from paperscore.models.analysis import RecognitionFailure, RecognitionResult, RecognitionSuccess
from paperscore.services.llm import ImageContent, UserMessage

SYSTEM_MESSAGE = """You are an assistant specialised in reading handwritten scores on graded exam papers.
You never grade answers yourself; you only transcribe the numbers a teacher wrote next to each question."""

PROMPT_TEMPLATE = """Analyse the attached exam paper image.

1. Read the student's roster number written on the paper. The paper is expected to belong to "{expected_identity}",
   but report exactly what is written; do not copy the expected value if the paper shows something else.
2. Find every handwritten score next to a question number.
3. Reply with ONLY this JSON object and nothing else:

{{
  "identity": "<roster number written on the paper>",
  "scores": {{"1": 10, "2": 7.5}},
  "note": "<one short sentence about what you saw or why no score was found>"
}}

Use the question numbers as written on the paper for the keys of "scores" and plain numbers for the values.
If no score can be read, return an empty "scores" object and explain why in "note"."""


class RecognitionPayload(BaseModel):
    """Exact response shape demanded from the vision model."""

    model_config = ConfigDict(strict=True, extra="forbid")

    identity: StrictStr
    scores: Dict[StrictStr, Union[StrictInt, StrictFloat]]
    note: StrictStr

    @field_validator("scores")
    @classmethod
    def scores_must_be_finite(cls, value):
        for question, score in value.items():
            if not math.isfinite(score):
                raise ValueError(f"score for question {question} is not a finite number")
        return value


def strip_code_fence(text: str) -> str:
    """Remove a ```json ... ``` wrapper the model sometimes adds."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
    return text.strip()


def parse_recognition_response(text: str) -> RecognitionSuccess:
    """Parse and strictly validate a raw model reply. Raises UpstreamServiceError."""
    if not text or not text.strip():
        raise UpstreamServiceError("Recognition service returned an empty response")

    cleaned = strip_code_fence(text)
    try:
        raw = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise UpstreamServiceError(f"Recognition response is not valid JSON: {e}")

    try:
        payload = RecognitionPayload.model_validate(raw)
    except PydanticValidationError as e:
        raise UpstreamServiceError(
            f"Recognition response does not match the expected schema: {e.error_count()} error(s)"
        )

    return RecognitionSuccess(
        scores={question: float(score) for question, score in payload.scores.items()},
        identity=payload.identity,
        note=payload.note,
    )


class RecognitionClient:
    """
    Wraps a single call to the vision model with strict validation and one retry.

    Holds no per-call state; construct once per process and share it.
    """

    def __init__(self, model, retry_delay: float = 10.0, max_attempts: int = 2, sleep=asyncio.sleep):
        self.model = model
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self._sleep = sleep

    def build_message(self, image_bytes: bytes, expected_identity: str) -> UserMessage:
        return UserMessage(
            text=PROMPT_TEMPLATE.format(expected_identity=expected_identity),
            file_contents=[ImageContent.from_bytes(image_bytes, "image/jpeg")],
        )

    async def analyze(self, image_bytes: bytes, expected_identity: str) -> RecognitionResult:
        """Recognize one paper. Never raises for service or parse failures."""
        message = self.build_message(image_bytes, expected_identity)
        reason = "no attempt made"

        for attempt in range(1, self.max_attempts + 1):
            try:
                text = await self.model.send_message(message)
                result = parse_recognition_response(text)
                if attempt > 1:
                    logger.info(f"Recognition succeeded on attempt {attempt} (expected {expected_identity})")
                return result
            except UpstreamServiceError as e:
                reason = e.message
            except Exception as e:
                reason = f"Recognition request failed: {type(e).__name__}: {e}"

            logger.warning(f"Recognition attempt {attempt}/{self.max_attempts} failed for {expected_identity}: {reason}")
            if attempt < self.max_attempts:
                await self._sleep(self.retry_delay)

        return RecognitionFailure(reason=reason, attempts=self.max_attempts)
