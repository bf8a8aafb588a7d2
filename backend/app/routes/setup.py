"""Setup form helper routes."""

from fastapi import APIRouter

from app.config import ANSWER_OPTIONS, DEFAULT_TOTAL_QUESTIONS
from app.models.exam import AnswerKeyDraft
from app.utils.answers import resize_answer_key

router = APIRouter(prefix="/setup", tags=["setup"])


@router.get("/defaults")
async def get_setup_defaults():
    """Initial values for the setup form"""
    return {
        "total_questions": DEFAULT_TOTAL_QUESTIONS,
        "answer_options": ANSWER_OPTIONS,
        "answer_key": resize_answer_key([], DEFAULT_TOTAL_QUESTIONS),
    }


@router.post("/answer-key")
async def resize_key(draft: AnswerKeyDraft):
    """Re-fit an answer key draft after the question count changes"""
    return {
        "total_questions": draft.total_questions,
        "answer_key": resize_answer_key(draft.answer_key, draft.total_questions),
    }
