"""
Thin async adapter over the google-generativeai SDK (ImageContent, UserMessage, GeminiVisionModel).
"""

import asyncio
import base64
from typing import List, Optional

import google.generativeai as genai

from paperscore.config import logger


class ImageContent:
    """Wraps a base64-encoded image for inclusion in a message."""

    def __init__(self, image_base64: str, mime_type: str = "image/jpeg"):
        self.image_base64 = image_base64
        self.mime_type = mime_type

    @classmethod
    def from_bytes(cls, image_bytes: bytes, mime_type: str = "image/jpeg") -> "ImageContent":
        return cls(base64.b64encode(image_bytes).decode(), mime_type)

    def to_genai_part(self) -> dict:
        """Convert to google-generativeai inline_data format."""
        # Strip data URI prefix if present
        b64 = self.image_base64
        if b64.startswith("data:"):
            b64 = b64.split(",", 1)[1]
        return {
            "inline_data": {
                "mime_type": self.mime_type,
                "data": b64,
            }
        }


class UserMessage:
    """Combines text and optional image contents into a single message."""

    def __init__(self, text: str = "", file_contents: Optional[List[ImageContent]] = None):
        self.text = text
        self.file_contents = file_contents or []

    def to_genai_parts(self) -> list:
        """Convert to a list of parts for the google-generativeai SDK."""
        parts = []
        for img in self.file_contents:
            parts.append(img.to_genai_part())
        if self.text:
            parts.append(self.text)
        return parts


class GeminiVisionModel:
    """
    Stateless single-turn Gemini call.

    Every send_message() is an independent generate_content request, so one
    instance can be shared by all analysis runs in the process.
    """

    def __init__(
        self,
        model_name: str = "gemini-2.5-flash",
        system_message: str = "",
        temperature: float = 0,
        response_mime_type: Optional[str] = "application/json",
    ):
        self.model_name = model_name
        gen_config = {"temperature": temperature}
        if response_mime_type:
            gen_config["response_mime_type"] = response_mime_type
        self._model = genai.GenerativeModel(
            model_name=model_name,
            system_instruction=system_message if system_message else None,
            generation_config=gen_config,
        )
        logger.info(f"Gemini vision model ready: {model_name}")

    async def send_message(self, message: UserMessage) -> str:
        """
        Send a message and return the response text as a plain string.

        Uses run_in_executor for the synchronous genai SDK call so the event
        loop stays free while the request is in flight.
        """
        parts = message.to_genai_parts()

        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            None, lambda: self._model.generate_content(parts)
        )

        return response.text
