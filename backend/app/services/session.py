"""
Grading session state machine: SETUP -> SCANNING -> REVIEW -> (SCANNING | COMPLETED).

Transitions are plain functions taking a Session and returning a new one; they
raise before building anything, so a rejected transition leaves the caller's
Session untouched. SessionController owns the current Session and the
single-flight guard around OCR calls.
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from app.config import logger, ANSWER_OPTIONS
from app.errors import AdapterError, PhaseError, ScanInProgress, SetupValidationError
from app.models.exam import ExamConfig, SetupRequest
from app.models.session import ExamResult, ScanOutcome, Session, SessionPhase
from app.services.ocr import OcrAdapter, OcrResult
from app.services.scoring import score_answers
from app.utils.answers import parse_roster, resize_answer_key
from app.utils.dates import format_thai_datetime

EMPTY_ROSTER_MESSAGE = "กรุณาระบุรายชื่อนักเรียนอย่างน้อย 1 คน"
EMPTY_SUBJECT_MESSAGE = "กรุณาระบุชื่อวิชา"
BAD_TOTAL_MESSAGE = "กรุณาระบุจำนวนข้อมากกว่า 0"
NO_OPTIONS_MESSAGE = "กรุณาระบุตัวเลือกคำตอบอย่างน้อย 1 ตัวเลือก"
WRONG_PHASE_MESSAGE = "ไม่สามารถทำรายการนี้ได้ในขั้นตอนปัจจุบัน ({phase})"
SCAN_BUSY_MESSAGE = "กำลังสแกนอยู่ กรุณารอสักครู่"
SESSION_CHANGED_MESSAGE = "ข้อมูลการตรวจเปลี่ยนไประหว่างการสแกน กรุณาสแกนใหม่"


def _require_phase(session: Session, *phases: SessionPhase):
    if session.phase not in phases:
        raise PhaseError(WRONG_PHASE_MESSAGE.format(phase=session.phase.value))


def build_exam_config(request: SetupRequest,
                      default_options: Sequence[str] = ANSWER_OPTIONS) -> ExamConfig:
    """Validate the setup form and build the immutable exam configuration."""
    students = parse_roster(request.roster)
    if not students:
        raise SetupValidationError(EMPTY_ROSTER_MESSAGE)

    subject = (request.subject or "").strip()
    if not subject:
        raise SetupValidationError(EMPTY_SUBJECT_MESSAGE)

    if request.total_questions <= 0:
        raise SetupValidationError(BAD_TOTAL_MESSAGE)

    options = request.answer_options or list(default_options)
    options = [o.strip() for o in options if o and o.strip()]
    if not options:
        raise SetupValidationError(NO_OPTIONS_MESSAGE)

    return ExamConfig(
        subject=subject,
        total_questions=request.total_questions,
        answer_key=resize_answer_key(request.answer_key, request.total_questions),
        students=students,
        answer_options=options,
    )


def start_session(session: Session, request: SetupRequest,
                  default_options: Sequence[str] = ANSWER_OPTIONS) -> Session:
    _require_phase(session, SessionPhase.SETUP)
    config = build_exam_config(request, default_options)
    return Session(phase=SessionPhase.SCANNING, config=config, results=[], current_index=0)


def record_scan(session: Session, result: OcrResult) -> Session:
    """
    Score a successful OCR result and hold it as the pending outcome.
    A rescan during REVIEW replaces the pending outcome.
    """
    _require_phase(session, SessionPhase.SCANNING, SessionPhase.REVIEW)
    answers = list(result.answers)
    outcome = ScanOutcome(
        score=score_answers(answers, session.config.answer_key),
        detected_answers=answers,
        confidence=result.confidence,
    )
    return session.model_copy(update={"phase": SessionPhase.REVIEW, "pending": outcome})


def retake(session: Session) -> Session:
    _require_phase(session, SessionPhase.REVIEW)
    return session.model_copy(update={"phase": SessionPhase.SCANNING, "pending": None})


def confirm(session: Session, now: datetime) -> Session:
    """Commit the pending outcome for the current student and advance."""
    _require_phase(session, SessionPhase.REVIEW)
    if session.pending is None:
        raise PhaseError(WRONG_PHASE_MESSAGE.format(phase=session.phase.value))

    config = session.config
    student = config.students[session.current_index]
    result = ExamResult(
        student_id=student.id,
        student_name=student.name,
        score=session.pending.score,
        total=config.total_questions,
        detected_answers=list(session.pending.detected_answers),
        scanned_at=now,
        scan_date=format_thai_datetime(now),
    )
    results = list(session.results) + [result]

    if session.current_index + 1 < len(config.students):
        return session.model_copy(update={
            "phase": SessionPhase.SCANNING,
            "results": results,
            "current_index": session.current_index + 1,
            "pending": None,
        })
    return session.model_copy(update={
        "phase": SessionPhase.COMPLETED,
        "results": results,
        "pending": None,
    })


def reset_session() -> Session:
    return Session()


class SessionController:
    """Owns the one live grading Session and serializes OCR calls."""

    def __init__(self, adapter: OcrAdapter, clock: Callable[[], datetime] = datetime.now,
                 default_options: Sequence[str] = ANSWER_OPTIONS):
        self._adapter = adapter
        self._clock = clock
        self._default_options = list(default_options)
        self._session = Session()
        self._scan_lock = asyncio.Lock()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def scan_in_progress(self) -> bool:
        return self._scan_lock.locked()

    def start(self, request: SetupRequest) -> Session:
        self._session = start_session(self._session, request, self._default_options)
        config = self._session.config
        logger.info(
            f"📝 Grading started: '{config.subject}', {config.total_questions} questions, "
            f"{len(config.students)} students"
        )
        return self._session

    async def scan(self, frame: bytes) -> Session:
        """
        Run one OCR scan for the current student.

        Raises ScanInProgress if a scan is already outstanding, ResourceUnavailable
        for an unusable frame and AdapterError when the OCR service fails. The
        session stays where it was on any failure.
        """
        _require_phase(self._session, SessionPhase.SCANNING, SessionPhase.REVIEW)
        if self._scan_lock.locked():
            raise ScanInProgress(SCAN_BUSY_MESSAGE)

        async with self._scan_lock:
            started = self._session
            config = started.config
            student = config.students[started.current_index]
            logger.info(
                f"📷 Scanning sheet {started.current_index + 1}/{len(config.students)} "
                f"({student.id} {student.name})"
            )
            result = await self._adapter.scan(frame, config.total_questions, config.answer_options)

            if not result.ok:
                logger.warning(f"Scan failed for student {student.id}: {result.error_kind.value}")
                raise AdapterError(result.error_kind, result.message)

            current = self._session
            if current.config is not started.config or current.current_index != started.current_index:
                raise PhaseError(SESSION_CHANGED_MESSAGE)

            self._session = record_scan(current, result)
            logger.info(
                f"✅ Scored {self._session.pending.score}/{config.total_questions} "
                f"(confidence {result.confidence:.2f})"
            )
            return self._session

    def retake(self) -> Session:
        self._session = retake(self._session)
        logger.info(f"🔁 Retake requested for student #{self._session.current_index + 1}")
        return self._session

    def confirm(self) -> Session:
        self._session = confirm(self._session, self._clock())
        saved = self._session.results[-1]
        logger.info(f"💾 Saved result for {saved.student_id} {saved.student_name}: {saved.score}/{saved.total}")
        if self._session.phase == SessionPhase.COMPLETED:
            logger.info(f"🏁 All {len(self._session.results)} sheets graded")
        return self._session

    def reset(self) -> Session:
        self._session = reset_session()
        logger.info("🗑️ Session reset")
        return self._session

    def results(self) -> List[ExamResult]:
        return list(self._session.results)

    def current_student(self) -> Optional[dict]:
        session = self._session
        if session.config is None or session.phase == SessionPhase.COMPLETED:
            return None
        return session.config.students[session.current_index].model_dump()
