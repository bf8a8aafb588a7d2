"""Grading session routes - setup, scan, review (retake/confirm), reset, history, export."""

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from fastapi.responses import Response
from urllib.parse import quote

from app.config import logger
from app.deps import get_session_controller
from app.errors import PhaseError, ScanGradeError
from app.models.exam import SetupRequest
from app.services.export import export_results_xlsx
from app.services.session import SessionController

router = APIRouter(tags=["grading"])

NO_RESULTS_MESSAGE = "ยังไม่มีผลการตรวจให้ส่งออก"

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _http_error(e: ScanGradeError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


def session_view(controller: SessionController) -> dict:
    """JSON view of the live session for the single-screen UI."""
    session = controller.session
    config = session.config
    return {
        "phase": session.phase.value,
        "config": config.model_dump() if config else None,
        "current_index": session.current_index,
        "current_student": controller.current_student(),
        "pending": session.pending.model_dump() if session.pending else None,
        "results_count": len(session.results),
        "total_students": len(config.students) if config else 0,
        "scan_in_progress": controller.scan_in_progress,
    }


@router.get("/session")
async def get_session(controller: SessionController = Depends(get_session_controller)):
    """Current phase, student and pending outcome"""
    return session_view(controller)


@router.post("/session/setup")
async def setup_session(
    request: SetupRequest,
    controller: SessionController = Depends(get_session_controller)
):
    """Validate the setup form and start scanning the first student"""
    try:
        controller.start(request)
    except ScanGradeError as e:
        logger.info(f"Setup rejected: {e.message}")
        raise _http_error(e)
    return session_view(controller)


@router.post("/session/scan")
async def scan_sheet(
    frame: UploadFile = File(...),
    controller: SessionController = Depends(get_session_controller)
):
    """Grade one captured frame for the current student"""
    data = await frame.read()
    try:
        await controller.scan(data)
    except ScanGradeError as e:
        raise _http_error(e)
    return session_view(controller)


@router.post("/session/retake")
async def retake_scan(controller: SessionController = Depends(get_session_controller)):
    """Discard the pending outcome and return to the camera"""
    try:
        controller.retake()
    except ScanGradeError as e:
        raise _http_error(e)
    return session_view(controller)


@router.post("/session/confirm")
async def confirm_scan(controller: SessionController = Depends(get_session_controller)):
    """Save the pending outcome and move to the next student"""
    try:
        controller.confirm()
    except ScanGradeError as e:
        raise _http_error(e)
    return session_view(controller)


@router.post("/session/reset")
async def reset_session(controller: SessionController = Depends(get_session_controller)):
    """Discard the whole session and return to setup"""
    controller.reset()
    return session_view(controller)


@router.get("/session/results")
async def get_results(controller: SessionController = Depends(get_session_controller)):
    """Grading history for the current session"""
    session = controller.session
    config = session.config
    return {
        "subject": config.subject if config else None,
        "graded": len(session.results),
        "total_students": len(config.students) if config else 0,
        "results": [
            {**r.model_dump(mode="json"), "percentage": round(r.percentage, 1)}
            for r in session.results
        ],
    }


@router.get("/session/export")
async def export_results(controller: SessionController = Depends(get_session_controller)):
    """Download confirmed results as an .xlsx file"""
    session = controller.session
    if not session.results:
        raise _http_error(PhaseError(NO_RESULTS_MESSAGE))

    filename, content = export_results_xlsx(session.results, session.config.subject)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f"attachment; filename=\"results.xlsx\"; filename*=UTF-8''{quote(filename)}"
        },
    )
