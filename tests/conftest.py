import io
import os
import sys

import pytest

BACKEND_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "backend")
sys.path.insert(0, BACKEND_DIR)

# Never reach the real OCR service from tests
os.environ.pop("GEMINI_API_KEY", None)

from PIL import Image  # noqa: E402

from app.services.ocr import encode_frame  # noqa: E402


class FakeLlmClient:
    """Stands in for LlmClient; returns a canned reply or raises."""

    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.messages = []

    async def generate(self, message):
        self.messages.append(message)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeOcrAdapter:
    """Returns queued OcrResults in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def scan(self, frame, expected_length, valid_options):
        encode_frame(frame)
        self.calls.append((frame, expected_length, list(valid_options)))
        return self.results.pop(0)


def make_frame(fmt="PNG", size=(64, 48)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=(240, 240, 240)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def frame():
    return make_frame()
