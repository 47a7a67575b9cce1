"""
assignments.py — Assignment lifecycle.

    active ──(due date passes)──> overdue
      │                             │
      └──(marked / all graded)──> completed  (terminal)

Status is derived on every load; only `completed` is ever written back.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from core.api_client import SheetApiClient
from core.grading import round_half_up
from core.lookups import class_name
from core.schemas import Assignment, Grade, SchoolClass, Student, parse_list

logger = logging.getLogger(__name__)

# Sort order for the status column.
STATUS_SORT_ORDER = {"overdue": 0, "active": 1, "completed": 2}

STATUS_LABELS = {
    "active": "Aktif",
    "overdue": "Terlambat",
    "completed": "Selesai",
}


def parse_due_date(value: str) -> Optional[datetime]:
    """ISO date or date-time -> aware UTC datetime; None if unparseable."""
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def derive_status(assignment: Assignment, now: Optional[datetime] = None) -> str:
    """completed if marked so; overdue once the due date is past; else active."""
    if assignment.status == "completed":
        return "completed"
    due = parse_due_date(assignment.due_date)
    if due is not None and due < _now(now):
        return "overdue"
    return "active"


def with_statuses(
    assignments: Sequence[Assignment],
    classes: Sequence[SchoolClass],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Assignment rows decorated with class name and derived status."""
    rows = []
    for a in assignments:
        rows.append(
            {
                "id": a.id,
                "title": a.title,
                "description": a.description,
                "classId": a.class_id,
                "className": class_name(a.class_id, classes),
                "dueDate": a.due_date,
                "maxPoints": a.max_points,
                "createdAt": a.created_at,
                "status": derive_status(a, now),
            }
        )
    return rows


def sort_assignments(rows: Sequence[Dict[str, Any]], by: str = "dueDate",
                     descending: bool = False) -> List[Dict[str, Any]]:
    """Sort decorated rows by dueDate, title, created or status."""
    far_future = datetime.max.replace(tzinfo=timezone.utc)

    def key(row):
        if by == "title":
            return row["title"].casefold()
        if by == "created":
            return parse_due_date(row.get("createdAt", "")) or far_future
        if by == "status":
            return STATUS_SORT_ORDER.get(row["status"], 1)
        return parse_due_date(row["dueDate"]) or far_future

    return sorted(rows, key=key, reverse=descending)


def assignment_stats(assignments: Sequence[Assignment], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Counts per status, due within the next 7 days, and mean max points."""
    current = _now(now)
    week_ahead = current + timedelta(days=7)
    statuses = [derive_status(a, current) for a in assignments]

    this_week = 0
    for a in assignments:
        due = parse_due_date(a.due_date)
        if due is not None and current <= due <= week_ahead:
            this_week += 1

    total = len(assignments)
    return {
        "total": total,
        "active": statuses.count("active"),
        "overdue": statuses.count("overdue"),
        "completed": statuses.count("completed"),
        "thisWeek": this_week,
        "averagePoints": round_half_up(sum(a.max_points for a in assignments) / total) if total else 0,
    }


def all_students_graded(grades: Sequence[Grade], students: Sequence[Student]) -> bool:
    """Every enrolled student has at least one grade. False for an empty roster."""
    if not students:
        return False
    graded = {g.student_username for g in grades}
    return all(s.username in graded for s in students)


def pending_grades(
    assignments: Sequence[Assignment],
    students: Sequence[Student],
    grades: Sequence[Grade],
    classes: Sequence[SchoolClass],
    class_id: str = "all",
    assignment_id: str = "all",
) -> List[Dict[str, Any]]:
    """(student, assignment) pairs with no grade yet."""
    if class_id != "all":
        relevant = [a for a in assignments if a.class_id == class_id]
    elif assignment_id != "all":
        relevant = [a for a in assignments if a.id == assignment_id]
    else:
        relevant = list(assignments)

    pending = []
    for a in relevant:
        graded = {g.student_username for g in grades if g.assignment_id == a.id}
        for s in students:
            if s.class_id != a.class_id or s.username in graded:
                continue
            pending.append(
                {
                    "studentUsername": s.username,
                    "studentName": s.full_name,
                    "studentClassId": s.class_id,
                    "assignmentId": a.id,
                    "assignmentTitle": a.title,
                    "assignmentClassName": class_name(a.class_id, classes),
                }
            )
    return pending


async def check_auto_complete(client: SheetApiClient, assignment: Assignment) -> Optional[str]:
    """
    Mark the assignment completed once every enrolled student has a grade.

    Run after a grade is saved. Returns the notification text when a
    transition happened, None otherwise. Failures are logged and leave the
    assignment as it was.
    """
    if assignment.status == "completed":
        return None

    try:
        grades_res, students_res = await asyncio.gather(
            client.get_assignment_grades(assignment.id),
            client.get_students_by_class(assignment.class_id),
        )
        if not (grades_res.ok and students_res.ok):
            logger.warning(
                "Auto-complete check skipped for %s: %s",
                assignment.id, grades_res.error or students_res.error,
            )
            return None

        grades = parse_list(Grade, grades_res.items("grades"))
        students = parse_list(Student, students_res.items("students"))
        if not all_students_graded(grades, students):
            return None

        update = await client.update_assignment_status(assignment.id, "completed")
        if not update.ok:
            logger.warning("Auto-complete update failed for %s: %s", assignment.id, update.error)
            return None
    except Exception:
        logger.exception("Error checking auto-complete for %s", assignment.id)
        return None

    logger.info("Assignment %s auto-completed", assignment.id)
    return f'Tugas "{assignment.title}" otomatis ditandai selesai karena semua siswa sudah dinilai!'
