"""
Answer-sheet OCR adapter.

Encodes a still camera frame, asks Gemini for the marked choice of every
question, strictly decodes the reply and normalizes the answer list. Failures
come back as a classified OcrResult; this module never retries.
"""

import asyncio
import base64
import io
import json
import math
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from google.api_core import exceptions as google_exceptions
from PIL import Image, UnidentifiedImageError

from app.config import logger, get_llm_api_key, JPEG_QUALITY
from app.errors import AdapterErrorKind, ResourceUnavailable
from app.services.llm import ImageContent, LlmClient, UserMessage
from app.utils.answers import normalize_answers

FAILURE_MESSAGES = {
    AdapterErrorKind.MISSING_CREDENTIAL: "ยังไม่ได้ตั้งค่า API key สำหรับบริการอ่านกระดาษคำตอบ",
    AdapterErrorKind.PERMISSION_DENIED: "ไม่มีสิทธิ์เข้าถึงบริการอ่านกระดาษคำตอบ กรุณาตรวจสอบ API key",
    AdapterErrorKind.MALFORMED_RESPONSE: "ไม่สามารถประมวลผลข้อมูลจากรูปภาพได้",
    AdapterErrorKind.EMPTY_RESPONSE: "ไม่พบข้อมูลคำตอบในรูปภาพ กรุณาถ่ายใหม่",
    AdapterErrorKind.TRANSIENT_ERROR: "การสแกนล้มเหลว กรุณาลองใหม่",
}

NO_FRAME_MESSAGE = "ไม่ได้รับภาพจากกล้อง กรุณาอนุญาตสิทธิ์การเข้าถึงกล้อง"

ANSWER_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "detectedAnswers": {
            "type": "ARRAY",
            "items": {"type": "STRING", "nullable": True},
            "description": "Detected answer choice for each question, in question order.",
        },
        "confidence": {
            "type": "NUMBER",
            "description": "Confidence level of the extraction (0 to 1).",
        },
    },
    "required": ["detectedAnswers", "confidence"],
}

PROMPT_TEMPLATE = """
Analyze this exam paper image. Extract the student's selected answers for {total} questions.
The student marks the answers using Thai characters: {options}.
If a question is skipped or the mark is unclear, return null for that answer.
Focus on finding question numbers 1 to {total} and their corresponding marks.
Return exactly {total} entries in detectedAnswers, one per question in order.
Ensure accuracy in OCR for Thai characters like {quoted}.
Also return your confidence in the whole extraction as a number from 0 to 1.
"""


class MalformedReply(ValueError):
    """Reply text could not be decoded into the answer schema."""


@dataclass
class DecodedReply:
    answers: list
    confidence: float


@dataclass
class OcrResult:
    """Tagged scan result: either answers + confidence, or a failure kind."""
    answers: List[str] = field(default_factory=list)
    confidence: float = 0.0
    error_kind: Optional[AdapterErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, answers: List[str], confidence: float) -> "OcrResult":
        return cls(answers=answers, confidence=confidence)

    @classmethod
    def failure(cls, kind: AdapterErrorKind, message: str = None) -> "OcrResult":
        return cls(error_kind=kind, message=message or FAILURE_MESSAGES[kind])


def encode_frame(frame: bytes, quality: int = JPEG_QUALITY) -> str:
    """Decode any still image and re-encode it as base64 JPEG."""
    if not frame:
        raise ResourceUnavailable(NO_FRAME_MESSAGE)
    try:
        with Image.open(io.BytesIO(frame)) as img:
            rgb = img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.warning(f"Unreadable camera frame ({len(frame)} bytes): {e}")
        raise ResourceUnavailable(NO_FRAME_MESSAGE)

    buf = io.BytesIO()
    rgb.save(buf, format="JPEG", quality=quality)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def build_prompt(total_questions: int, options: Sequence[str]) -> str:
    return PROMPT_TEMPLATE.format(
        total=total_questions,
        options=", ".join(options),
        quoted=", ".join(f"'{o}'" for o in options),
    )


def _coerce_reply(data) -> DecodedReply:
    if not isinstance(data, dict):
        raise MalformedReply(f"expected a JSON object, got {type(data).__name__}")
    answers = data.get("detectedAnswers")
    if not isinstance(answers, list):
        raise MalformedReply("detectedAnswers is missing or not an array")

    confidence = data.get("confidence", 0)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = 0.0
    elif isinstance(confidence, int):
        confidence = float(min(max(confidence, 0), 1))
    elif not math.isfinite(confidence):
        # json.loads accepts NaN and Infinity
        confidence = 0.0
    confidence = min(max(confidence, 0.0), 1.0)
    return DecodedReply(answers=answers, confidence=confidence)


def _first_json_object(text: str):
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            obj, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            return obj
    return None


def decode_reply(text: str) -> DecodedReply:
    """
    Decode the model reply into answers + confidence.

    Strategies, in order: the whole text as JSON, the body of a ```json fence,
    then the first well-formed {...} substring. Raises MalformedReply.
    """
    resp_text = text.strip()

    # Strategy 1: Direct parse
    try:
        return _coerce_reply(json.loads(resp_text))
    except (json.JSONDecodeError, MalformedReply):
        pass

    # Strategy 2: Remove code blocks
    fence = re.search(r"```(?:json)?\s*(.*?)```", resp_text, re.DOTALL)
    if fence:
        try:
            return _coerce_reply(json.loads(fence.group(1).strip()))
        except (json.JSONDecodeError, MalformedReply):
            pass

    # Strategy 3: Find JSON in response
    obj = _first_json_object(resp_text)
    if obj is None:
        raise MalformedReply("no JSON object found in reply")
    return _coerce_reply(obj)


def classify_exception(exc: Exception) -> AdapterErrorKind:
    if isinstance(exc, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)):
        return AdapterErrorKind.PERMISSION_DENIED
    if isinstance(exc, google_exceptions.InvalidArgument) and "api key" in str(exc).lower():
        return AdapterErrorKind.PERMISSION_DENIED
    return AdapterErrorKind.TRANSIENT_ERROR


class OcrAdapter:
    """Turns one still frame into a normalized answer list."""

    def __init__(self, client_factory: Callable[[], LlmClient] = None,
                 api_key_getter: Callable[[], Optional[str]] = get_llm_api_key,
                 jpeg_quality: int = JPEG_QUALITY):
        self._client_factory = client_factory or (
            lambda: LlmClient().with_temperature(0).with_response_schema(ANSWER_SCHEMA)
        )
        self._api_key_getter = api_key_getter
        self._jpeg_quality = jpeg_quality

    async def scan(self, frame: bytes, expected_length: int,
                   valid_options: Sequence[str]) -> OcrResult:
        """
        Recognize the marked answers in `frame`.

        Raises ResourceUnavailable when the frame itself is unusable; every
        failure of the OCR service is returned as a failed OcrResult.
        """
        loop = asyncio.get_running_loop()
        image_b64 = await loop.run_in_executor(None, encode_frame, frame, self._jpeg_quality)

        if not self._api_key_getter():
            logger.error("❌ Scan attempted without GEMINI_API_KEY")
            return OcrResult.failure(AdapterErrorKind.MISSING_CREDENTIAL)

        message = UserMessage(
            text=build_prompt(expected_length, valid_options),
            file_contents=[ImageContent(image_b64, mime_type="image/jpeg")],
        )

        try:
            reply = await self._client_factory().generate(message)
        except Exception as e:
            kind = classify_exception(e)
            logger.error(f"OCR request failed ({kind.value}): {e}", exc_info=True)
            return OcrResult.failure(kind)

        if not reply or not reply.strip():
            logger.warning("OCR reply was empty")
            return OcrResult.failure(AdapterErrorKind.EMPTY_RESPONSE)

        try:
            decoded = decode_reply(reply)
        except MalformedReply as e:
            logger.warning(f"Failed to parse OCR reply: {e}; first 300 chars: {reply[:300]!r}")
            return OcrResult.failure(AdapterErrorKind.MALFORMED_RESPONSE)

        if len(decoded.answers) != expected_length:
            logger.info(
                f"OCR returned {len(decoded.answers)} answers for {expected_length} questions, normalizing"
            )
        answers = normalize_answers(decoded.answers, expected_length, valid_options)
        return OcrResult.success(answers, decoded.confidence)
