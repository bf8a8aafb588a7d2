"""Grading session Pydantic models"""

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from .exam import ExamConfig


class SessionPhase(str, Enum):
    SETUP = "SETUP"
    SCANNING = "SCANNING"
    REVIEW = "REVIEW"
    COMPLETED = "COMPLETED"


class ScanOutcome(BaseModel):
    """Pending, unconfirmed scan of the current student's sheet"""
    model_config = ConfigDict(frozen=True)
    score: int = Field(ge=0)
    detected_answers: List[str]
    confidence: float = 0.0


class ExamResult(BaseModel):
    """Confirmed result for one student"""
    model_config = ConfigDict(frozen=True)
    student_id: str
    student_name: str
    score: int
    total: int
    detected_answers: List[str]
    scanned_at: datetime
    scan_date: str  # th-TH display string, e.g. 17/10/2569 14:03:00

    @property
    def percentage(self) -> float:
        return (self.score / self.total) * 100 if self.total else 0.0


class Session(BaseModel):
    """All mutable grading state, replaced wholesale on every transition"""
    model_config = ConfigDict(frozen=True)
    phase: SessionPhase = SessionPhase.SETUP
    config: Optional[ExamConfig] = None
    results: List[ExamResult] = []
    current_index: int = 0
    pending: Optional[ScanOutcome] = None
