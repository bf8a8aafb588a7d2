"""Exam setup Pydantic models"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Optional

from app.config import DEFAULT_TOTAL_QUESTIONS


class Student(BaseModel):
    """One roster entry. Identity is positional; ids are free text and may repeat."""
    model_config = ConfigDict(frozen=True)
    id: str = ""
    name: str = ""


class ExamConfig(BaseModel):
    """Built once when scanning starts, immutable for the rest of the session."""
    model_config = ConfigDict(frozen=True)
    subject: str = Field(min_length=1)
    total_questions: int = Field(gt=0)
    answer_key: List[str]
    students: List[Student] = Field(min_length=1)
    answer_options: List[str] = Field(min_length=1)

    @model_validator(mode="after")
    def _key_matches_question_count(self):
        if len(self.answer_key) != self.total_questions:
            raise ValueError(
                f"answer_key has {len(self.answer_key)} entries, expected {self.total_questions}"
            )
        return self


class SetupRequest(BaseModel):
    """Raw setup form submission. Validated by the session, not by the schema."""
    subject: str = ""
    total_questions: int = DEFAULT_TOTAL_QUESTIONS
    answer_key: List[Optional[str]] = []
    roster: str = ""
    answer_options: Optional[List[str]] = None


class AnswerKeyDraft(BaseModel):
    """Answer key being edited while the question count changes."""
    total_questions: int = Field(ge=0)
    answer_key: List[Optional[str]] = []
