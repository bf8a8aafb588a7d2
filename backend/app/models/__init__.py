"""Pydantic models for ScanGrade application"""

from .exam import Student, ExamConfig, SetupRequest, AnswerKeyDraft
from .session import SessionPhase, ScanOutcome, ExamResult, Session
