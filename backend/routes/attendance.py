"""
Attendance routes — global stats, class recaps, daily completeness.
"""

import asyncio
import logging
from datetime import date as Date

from fastapi import APIRouter, Depends, HTTPException

from core.api_client import SheetApiClient
from core.attendance import (
    compute_class_recaps, compute_global_stats, get_class_attendance_status, mark_all_present,
    student_summaries, validate_submission,
)
from core.errors import ValidationError
from core.schemas import AttendanceRecord, SchoolClass, Student, parse_list
from core.views import refresh_attendance_view
from routes.deps import get_api_client, records_from_payload, unwrap

router = APIRouter()
logger = logging.getLogger(__name__)


def _parse_day(value) -> Date:
    if not value:
        return Date.today()
    try:
        return Date.fromisoformat(str(value)[:10])
    except ValueError:
        raise HTTPException(400, f"Invalid date '{value}'. Use YYYY-MM-DD.")


@router.post("/stats")
async def stats(payload: dict):
    """All-time, all-class attendance figures."""
    records = records_from_payload(payload, "records", AttendanceRecord, required=True)
    return compute_global_stats(records)


@router.post("/recap")
async def recap(payload: dict):
    """One recap per class (plus unmatched records), sorted by class name."""
    records = records_from_payload(payload, "records", AttendanceRecord, required=True)
    classes = records_from_payload(payload, "classes", SchoolClass)
    students = records_from_payload(payload, "students", Student)
    return {"recaps": compute_class_recaps(records, classes, students)}


@router.post("/status")
async def status(payload: dict):
    """Completeness of one class on one date."""
    class_id = payload.get("classId")
    if not class_id:
        raise HTTPException(400, "No 'classId' provided.")
    records = records_from_payload(payload, "records", AttendanceRecord)
    roster = [s for s in records_from_payload(payload, "students", Student) if s.class_id == class_id]
    day = _parse_day(payload.get("date"))
    return get_class_attendance_status(records, class_id, day, roster=roster or None)


@router.post("/students")
async def students(payload: dict):
    """Per-student attendance totals, optionally for one class."""
    records = records_from_payload(payload, "records", AttendanceRecord)
    roster = records_from_payload(payload, "students", Student, required=True)
    classes = records_from_payload(payload, "classes", SchoolClass)
    return {"students": student_summaries(records, roster, classes, payload.get("classId") or None)}


@router.post("/dashboard")
async def dashboard(payload: dict):
    """Full attendance page state."""
    state = refresh_attendance_view(
        records_from_payload(payload, "records", AttendanceRecord),
        records_from_payload(payload, "classes", SchoolClass),
        records_from_payload(payload, "students", Student),
        selected_class=payload.get("classId") or "",
        selected_date=_parse_day(payload.get("date")),
    )
    return state.as_dict()


@router.get("/live-dashboard")
async def live_dashboard(classId: str = "", date: str = "",
                         client: SheetApiClient = Depends(get_api_client)):
    """Attendance page state built from a fresh fetch of the remote sheet."""
    classes_res, students_res, records_res = await asyncio.gather(
        client.get_classes(), client.get_students(), client.get_all_attendance(),
    )
    state = refresh_attendance_view(
        parse_list(AttendanceRecord, unwrap(records_res).items("attendance")),
        parse_list(SchoolClass, unwrap(classes_res).items("classes")),
        parse_list(Student, unwrap(students_res).items("students")),
        selected_class=classId,
        selected_date=_parse_day(date),
    )
    return state.as_dict()


@router.post("/save")
async def save(payload: dict, client: SheetApiClient = Depends(get_api_client)):
    """
    Save one class's attendance for a date.

    With `markAllPresent` the class roster is fetched and everyone is
    marked present; otherwise `attendance` (username -> status) is sent as is.
    """
    class_id = payload.get("classId") or ""
    day = _parse_day(payload.get("date")).isoformat()
    statuses = payload.get("attendance") or {}

    if class_id and payload.get("markAllPresent"):
        roster = parse_list(Student, unwrap(await client.get_students_by_class(class_id)).items("students"))
        statuses = mark_all_present(roster)

    try:
        statuses = validate_submission(class_id, statuses)
    except ValidationError as exc:
        raise HTTPException(422, exc.message)

    unwrap(await client.update_attendance(class_id, day, statuses))
    logger.info("Attendance saved: class=%s date=%s students=%d", class_id, day, len(statuses))
    return {"saved": len(statuses), "classId": class_id, "date": day}
