"""Tests for the grading session state machine and its controller."""

import asyncio
from datetime import datetime

import pytest

from app.errors import (
    AdapterError,
    AdapterErrorKind,
    PhaseError,
    ResourceUnavailable,
    ScanInProgress,
    SetupValidationError,
)
from app.models.exam import SetupRequest
from app.models.session import Session, SessionPhase
from app.services import session as machine
from app.services.ocr import OcrAdapter, OcrResult
from app.services.session import SessionController
from conftest import FakeLlmClient, FakeOcrAdapter

OPTIONS = ["ก", "ข", "ค", "ง"]
NOW = datetime(2026, 10, 17, 9, 5, 3)


def setup_request(**overrides):
    data = {
        "subject": "คณิตศาสตร์",
        "total_questions": 3,
        "answer_key": ["ก", "ข", "ค"],
        "roster": "1, สมชาย\n2, สมหญิง",
    }
    data.update(overrides)
    return SetupRequest(**data)


def started(**overrides):
    return machine.start_session(Session(), setup_request(**overrides), OPTIONS)


def make_controller(*results):
    return SessionController(adapter=FakeOcrAdapter(*results), clock=lambda: NOW,
                             default_options=OPTIONS)


class TestStartSession:

    def test_enters_scanning_at_first_student(self):
        session = started()
        assert session.phase == SessionPhase.SCANNING
        assert session.current_index == 0
        assert session.results == []
        assert session.config.subject == "คณิตศาสตร์"
        assert [s.id for s in session.config.students] == ["1", "2"]
        assert session.config.answer_options == OPTIONS

    def test_answer_key_fitted_to_question_count(self):
        session = started(total_questions=5, answer_key=["ก ", "ขข"])
        assert session.config.answer_key == ["ก", "ข", "", "", ""]

    def test_empty_roster_rejected(self):
        with pytest.raises(SetupValidationError, match="รายชื่อนักเรียน"):
            started(roster="\n , \n")

    def test_blank_subject_rejected(self):
        with pytest.raises(SetupValidationError, match="ชื่อวิชา"):
            started(subject="   ")

    def test_non_positive_question_count_rejected(self):
        with pytest.raises(SetupValidationError):
            started(total_questions=0)

    def test_custom_answer_options(self):
        session = started(answer_options=["A", " B ", ""])
        assert session.config.answer_options == ["A", "B"]

    def test_only_from_setup(self):
        with pytest.raises(PhaseError):
            machine.start_session(started(), setup_request(), OPTIONS)


class TestTransitions:

    def test_scan_moves_to_review_with_score(self):
        session = machine.record_scan(started(), OcrResult.success(["ก", "ข", "ง"], 0.7))
        assert session.phase == SessionPhase.REVIEW
        assert session.pending.score == 2
        assert session.pending.detected_answers == ["ก", "ข", "ง"]
        assert session.results == []

    def test_unset_key_entry_never_scores(self):
        session = machine.record_scan(started(answer_key=["ก", "", "ค"]),
                                      OcrResult.success(["ก", "ข", "ค"], 1.0))
        assert session.pending.score == 2

    def test_rescan_in_review_replaces_pending(self):
        session = machine.record_scan(started(), OcrResult.success(["ก", "", ""], 1.0))
        session = machine.record_scan(session, OcrResult.success(["ก", "ข", "ค"], 1.0))
        assert session.pending.score == 3
        assert session.results == []

    def test_retake_discards_pending(self):
        scanned = machine.record_scan(started(), OcrResult.success(["ก", "ข", "ค"], 1.0))
        session = machine.retake(scanned)
        assert session.phase == SessionPhase.SCANNING
        assert session.pending is None
        assert session.results == scanned.results
        assert session.current_index == scanned.current_index

    def test_retake_only_from_review(self):
        with pytest.raises(PhaseError):
            machine.retake(started())

    def test_confirm_advances_to_next_student(self):
        scanned = machine.record_scan(started(), OcrResult.success(["ก", "ข", "ง"], 1.0))
        session = machine.confirm(scanned, NOW)
        assert session.phase == SessionPhase.SCANNING
        assert session.current_index == 1
        assert session.pending is None
        result = session.results[0]
        assert (result.student_id, result.student_name) == ("1", "สมชาย")
        assert (result.score, result.total) == (2, 3)
        assert result.scan_date == "17/10/2569 09:05:03"

    def test_confirming_last_student_completes(self):
        session = started()
        for _ in range(2):
            session = machine.record_scan(session, OcrResult.success(["ก", "ข", "ค"], 1.0))
            session = machine.confirm(session, NOW)
        assert session.phase == SessionPhase.COMPLETED
        assert len(session.results) == len(session.config.students)
        assert [r.student_id for r in session.results] == ["1", "2"]

    def test_confirm_requires_pending_outcome(self):
        with pytest.raises(PhaseError):
            machine.confirm(started(), NOW)

    def test_no_scan_after_completion(self):
        session = started(roster="1, สมชาย")
        session = machine.confirm(machine.record_scan(session, OcrResult.success([], 0)), NOW)
        with pytest.raises(PhaseError):
            machine.record_scan(session, OcrResult.success([], 0))

    def test_rejected_transition_leaves_session_untouched(self):
        session = started()
        with pytest.raises(PhaseError):
            machine.confirm(session, NOW)
        assert session.phase == SessionPhase.SCANNING


class TestSessionController:

    def test_full_run(self, frame):
        controller = make_controller(
            OcrResult.success(["ก", "ข", "ค"], 0.9),
            OcrResult.success(["ก", "", "ง"], 0.8),
        )
        controller.start(setup_request())
        asyncio.run(controller.scan(frame))
        controller.confirm()
        asyncio.run(controller.scan(frame))
        session = controller.confirm()
        assert session.phase == SessionPhase.COMPLETED
        assert [r.score for r in session.results] == [3, 1]
        assert controller.current_student() is None

    def test_adapter_receives_exam_shape(self, frame):
        controller = make_controller(OcrResult.success(["ก", "ข", "ค"], 0.9))
        controller.start(setup_request(total_questions=4))
        asyncio.run(controller.scan(frame))
        _, expected, options = controller._adapter.calls[0]
        assert expected == 4
        assert options == OPTIONS

    def test_adapter_failure_keeps_scanning(self, frame):
        controller = make_controller(OcrResult.failure(AdapterErrorKind.MALFORMED_RESPONSE))
        controller.start(setup_request())
        with pytest.raises(AdapterError) as exc_info:
            asyncio.run(controller.scan(frame))
        assert exc_info.value.kind == AdapterErrorKind.MALFORMED_RESPONSE
        assert controller.session.phase == SessionPhase.SCANNING
        assert controller.session.pending is None

    def test_missing_credential_through_real_adapter(self, frame):
        adapter = OcrAdapter(client_factory=lambda: FakeLlmClient(""), api_key_getter=lambda: None)
        controller = SessionController(adapter=adapter, default_options=OPTIONS)
        controller.start(setup_request())
        with pytest.raises(AdapterError) as exc_info:
            asyncio.run(controller.scan(frame))
        assert exc_info.value.kind == AdapterErrorKind.MISSING_CREDENTIAL
        assert exc_info.value.status_code == 503

    def test_unusable_frame_keeps_scanning(self):
        adapter = OcrAdapter(client_factory=lambda: FakeLlmClient(""), api_key_getter=lambda: "k")
        controller = SessionController(adapter=adapter, default_options=OPTIONS)
        controller.start(setup_request())
        with pytest.raises(ResourceUnavailable):
            asyncio.run(controller.scan(b""))
        assert controller.session.phase == SessionPhase.SCANNING

    def test_short_ocr_reply_is_padded_and_scored(self, frame):
        client = FakeLlmClient('{"detectedAnswers": ["ก"], "confidence": 0.4}')
        adapter = OcrAdapter(client_factory=lambda: client, api_key_getter=lambda: "k")
        controller = SessionController(adapter=adapter, default_options=OPTIONS)
        controller.start(setup_request())
        session = asyncio.run(controller.scan(frame))
        assert session.pending.detected_answers == ["ก", "", ""]
        assert session.pending.score == 1

    def test_scan_in_setup_rejected(self, frame):
        controller = make_controller()
        with pytest.raises(PhaseError):
            asyncio.run(controller.scan(frame))

    def test_single_flight(self, frame):
        release = None

        class SlowAdapter:
            async def scan(self, frame, expected_length, valid_options):
                await release.wait()
                return OcrResult.success(["ก", "ข", "ค"], 1.0)

        controller = SessionController(adapter=SlowAdapter(), default_options=OPTIONS)
        controller.start(setup_request())

        async def scenario():
            nonlocal release
            release = asyncio.Event()
            first = asyncio.create_task(controller.scan(frame))
            await asyncio.sleep(0)
            assert controller.scan_in_progress
            with pytest.raises(ScanInProgress):
                await controller.scan(frame)
            release.set()
            await first

        asyncio.run(scenario())
        assert controller.session.phase == SessionPhase.REVIEW
        assert not controller.scan_in_progress

    def test_reset_during_scan_discards_outcome(self, frame):
        release = None

        class SlowAdapter:
            async def scan(self, frame, expected_length, valid_options):
                await release.wait()
                return OcrResult.success(["ก", "ข", "ค"], 1.0)

        controller = SessionController(adapter=SlowAdapter(), default_options=OPTIONS)
        controller.start(setup_request())

        async def scenario():
            nonlocal release
            release = asyncio.Event()
            task = asyncio.create_task(controller.scan(frame))
            await asyncio.sleep(0)
            controller.reset()
            release.set()
            with pytest.raises(PhaseError):
                await task

        asyncio.run(scenario())
        assert controller.session.phase == SessionPhase.SETUP

    def test_reset_returns_to_setup(self, frame):
        controller = make_controller(OcrResult.success(["ก", "ข", "ค"], 1.0))
        controller.start(setup_request())
        asyncio.run(controller.scan(frame))
        controller.confirm()
        session = controller.reset()
        assert session == Session()
        assert controller.results() == []
