"""
FastAPI dependencies - the process-wide grading session controller.
"""

from .services.ocr import OcrAdapter
from .services.session import SessionController

_controller = SessionController(adapter=OcrAdapter())


def get_session_controller() -> SessionController:
    """Single grading session shared by every request."""
    return _controller
