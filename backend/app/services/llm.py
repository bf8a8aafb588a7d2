"""
Thin wrapper around the google-generativeai SDK (LlmClient, UserMessage, ImageContent).
"""

import asyncio
from typing import List, Optional

import google.generativeai as genai

from app.config import logger, GEMINI_MODEL


class ImageContent:
    """Wraps a base64-encoded image for inclusion in a message."""

    def __init__(self, image_base64: str, mime_type: str = "image/jpeg"):
        self.image_base64 = image_base64
        self.mime_type = mime_type

    def to_genai_part(self) -> dict:
        """Convert to google-generativeai inline_data format."""
        return {
            "inline_data": {
                "mime_type": self.mime_type,
                "data": self.image_base64,
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


class LlmClient:
    """
    Single-shot Gemini client.

    Supports the chaining API:
        client = LlmClient()
            .with_temperature(0)
            .with_response_schema(schema)

    generate() is async and returns the reply text (possibly empty).
    SDK exceptions propagate unchanged so callers can classify them.
    """

    def __init__(self, model_name: str = GEMINI_MODEL):
        self._model_name = model_name
        self._temperature = None
        self._response_schema = None

    def with_temperature(self, temperature: float) -> "LlmClient":
        self._temperature = temperature
        return self

    def with_response_schema(self, schema: dict) -> "LlmClient":
        """Ask for JSON output conforming to `schema`."""
        self._response_schema = schema
        return self

    def generation_config(self) -> dict:
        gen_config = {}
        if self._temperature is not None:
            gen_config["temperature"] = self._temperature
        if self._response_schema is not None:
            gen_config["response_mime_type"] = "application/json"
            gen_config["response_schema"] = self._response_schema
        return gen_config

    async def generate(self, message: UserMessage) -> str:
        """
        Send one message and return the response text.

        Uses run_in_executor for the synchronous genai SDK call.
        """
        gen_config = self.generation_config()
        model = genai.GenerativeModel(
            model_name=self._model_name,
            generation_config=gen_config if gen_config else None,
        )
        parts = message.to_genai_parts()

        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            None, lambda: model.generate_content(parts)
        )

        try:
            return response.text or ""
        except ValueError as e:
            # .text raises when the candidate was blocked or has no parts
            logger.warning(f"Gemini returned no text: {e}")
            return ""
