"""
Report routes — Excel export endpoints.
"""

import uuid
from pathlib import Path
from typing import Dict, List

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.attendance import compute_class_recaps, student_summaries
from core.gamification import leaderboard
from core.lookups import assignment_title, class_name
from core.report_builder import (
    ExcelExporter,
    attendance_record_rows,
    attendance_records_filename,
    attendance_report_filename,
    build_attendance_report,
    build_grade_report,
    class_recap_filename,
    class_recap_rows,
    grade_report_filename,
    leaderboard_filename,
    leaderboard_rows,
)
from core.schemas import (
    AttendanceRecord, Assignment, GamificationRecord, Grade, Level, SchoolClass, Student,
)
from routes.deps import records_from_payload

router = APIRouter()

UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
REPORTS_DIR = UPLOAD_DIR / "reports"
REPORTS_DIR.mkdir(parents=True, exist_ok=True)

EXPORTER = ExcelExporter()


def _safe_unlink(path: str):
    """Best-effort file deletion after response is sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        pass


def _send_workbook(sheets: Dict[str, List[dict]], filename: str) -> FileResponse:
    report_id = str(uuid.uuid4())[:8]
    output_path = REPORTS_DIR / f"export_{report_id}.xlsx"
    EXPORTER.write(sheets, str(output_path))

    return FileResponse(
        str(output_path),
        media_type=EXPORTER.media_type,
        filename=filename,
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )


@router.post("/grades-excel")
async def grades_excel(payload: dict):
    """Grade list (optionally one class / one assignment) with a summary sheet."""
    grades = records_from_payload(payload, "grades", Grade, required=True)
    assignments = records_from_payload(payload, "assignments", Assignment)
    students = records_from_payload(payload, "students", Student)
    classes = records_from_payload(payload, "classes", SchoolClass)
    class_id = payload.get("classId", "all")
    assignment_id = payload.get("assignmentId", "all")

    if assignment_id != "all":
        grades = [g for g in grades if g.assignment_id == assignment_id]
    if class_id != "all":
        in_class = {a.id for a in assignments if a.class_id == class_id}
        grades = [g for g in grades if g.assignment_id in in_class]
    if not grades:
        raise HTTPException(400, "Tidak ada data nilai untuk diekspor")

    sheets = build_grade_report(grades, assignments, students, classes, class_id, assignment_id)
    filename = grade_report_filename(
        class_label=class_name(class_id, classes) if class_id != "all" else None,
        assignment_label=assignment_title(assignment_id, assignments) if assignment_id != "all" else None,
    )
    return _send_workbook(sheets, filename)


@router.post("/attendance-excel")
async def attendance_excel(payload: dict):
    """Per-student attendance recap for one class or all classes."""
    records = records_from_payload(payload, "records", AttendanceRecord)
    students = records_from_payload(payload, "students", Student, required=True)
    classes = records_from_payload(payload, "classes", SchoolClass)
    class_id = payload.get("classId") or None

    summaries = student_summaries(records, students, classes, class_id)
    if not summaries:
        raise HTTPException(400, "Tidak ada data siswa untuk diekspor")

    sheets = build_attendance_report(summaries, records, classes, class_id)
    label = class_name(class_id, classes) if class_id else None
    return _send_workbook(sheets, attendance_report_filename(label))


@router.post("/recap-excel")
async def recap_excel(payload: dict):
    """One row per class recap."""
    records = records_from_payload(payload, "records", AttendanceRecord, required=True)
    classes = records_from_payload(payload, "classes", SchoolClass)
    students = records_from_payload(payload, "students", Student)

    recaps = compute_class_recaps(records, classes, students)
    if not recaps:
        raise HTTPException(400, "Tidak ada data presensi untuk diekspor")
    return _send_workbook({"Rekap Per Kelas": class_recap_rows(recaps)}, class_recap_filename())


@router.post("/records-excel")
async def records_excel(payload: dict):
    """Raw attendance rows."""
    records = records_from_payload(payload, "records", AttendanceRecord, required=True)
    classes = records_from_payload(payload, "classes", SchoolClass)
    if not records:
        raise HTTPException(400, "Tidak ada data presensi untuk diekspor")
    return _send_workbook({"Data Presensi": attendance_record_rows(records, classes)}, attendance_records_filename())


@router.post("/leaderboard-excel")
async def leaderboard_excel(payload: dict):
    """Gamification ranking, global or for one class."""
    records = records_from_payload(payload, "records", GamificationRecord, required=True)
    students = records_from_payload(payload, "students", Student)
    levels = records_from_payload(payload, "levels", Level)
    classes = records_from_payload(payload, "classes", SchoolClass)

    entries = leaderboard(records, students, levels, class_id=payload.get("classId"))
    if not entries:
        raise HTTPException(400, "Tidak ada data peringkat untuk diekspor")
    return _send_workbook({"Peringkat": leaderboard_rows(entries, classes)}, leaderboard_filename())
