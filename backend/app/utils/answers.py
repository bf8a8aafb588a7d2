"""Roster parsing and answer-list normalization."""

from typing import Iterable, List, Optional, Sequence

from app.models.exam import Student

NO_ANSWER = ""


def parse_roster(text: str) -> List[Student]:
    """
    Parse roster text, one student per line as "id, name".
    Either field may be blank; a line with both blank is dropped.
    """
    students = []
    for line in (text or "").strip().splitlines():
        parts = [p.strip() for p in line.split(",")]
        student_id = parts[0] if parts else ""
        name = parts[1] if len(parts) > 1 else ""
        if student_id or name:
            students.append(Student(id=student_id, name=name))
    return students


def clean_key_cell(value: Optional[str]) -> str:
    """An answer key cell holds at most one character after trimming."""
    if not value:
        return NO_ANSWER
    return value.strip()[:1]


def resize_answer_key(key: Sequence[Optional[str]], total: int) -> List[str]:
    """Pad with unset cells or truncate so the key has exactly `total` entries."""
    total = max(total, 0)
    cleaned = [clean_key_cell(cell) for cell in list(key)[:total]]
    return cleaned + [NO_ANSWER] * (total - len(cleaned))


def normalize_answers(raw: Optional[Iterable], expected_length: int,
                      valid_options: Iterable[str]) -> List[str]:
    """
    Reconcile a raw OCR answer list with the exam's question count.

    Entries outside `valid_options` (None, blanks, unknown marks, non-strings)
    become NO_ANSWER; short lists are padded and long lists truncated so the
    result always has exactly `expected_length` entries. Never raises.
    """
    options = set(valid_options)
    expected_length = max(expected_length, 0)
    answers = []
    for value in list(raw or [])[:expected_length]:
        if isinstance(value, str) and value.strip() in options:
            answers.append(value.strip())
        else:
            answers.append(NO_ANSWER)
    answers.extend([NO_ANSWER] * (expected_length - len(answers)))
    return answers
