"""
Spreadsheet export of confirmed results.
"""

import io
import re
from typing import Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from app.config import logger
from app.models.session import ExamResult

SHEET_TITLE = "ผลการสอบ"

HEADERS = [
    "เลขที่",
    "ชื่อ-นามสกุล",
    "คะแนนที่ได้",
    "คะแนนเต็ม",
    "คิดเป็นร้อยละ",
    "วันที่ตรวจ",
]

COLUMN_WIDTHS = [10, 28, 12, 12, 14, 22]


def format_percentage(score: int, total: int) -> str:
    value = (score / total) * 100 if total else 0.0
    return f"{value:.1f}%"


def export_filename(subject: str) -> str:
    safe = re.sub(r'[\\/:*?"<>|\r\n\t]+', "_", subject.strip()) or "exam"
    return f"ผลสอบ_{safe}.xlsx"


def build_results_workbook(results: Sequence[ExamResult]) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    ws.append(HEADERS)

    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center")

    for col in range(1, len(HEADERS) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.alignment = center
        ws.column_dimensions[get_column_letter(col)].width = COLUMN_WIDTHS[col - 1]

    ws.freeze_panes = "A2"

    for r in results:
        ws.append([
            r.student_id,
            r.student_name,
            r.score,
            r.total,
            format_percentage(r.score, r.total),
            r.scan_date,
        ])

    return wb


def export_results_xlsx(results: Sequence[ExamResult], subject: str):
    """Return (filename, xlsx bytes) for the given results."""
    wb = build_results_workbook(results)
    buf = io.BytesIO()
    wb.save(buf)
    filename = export_filename(subject)
    logger.info(f"📊 Exported {len(results)} results to {filename}")
    return filename, buf.getvalue()
