"""
attendance.py — Attendance aggregation over raw per-student, per-date records.

Computes:
- Global (all-time, all-class) status counts and coverage
- Per-class recap, one row for every known class
- Daily completeness for a class/date (not-taken / partial / complete)
- Per-student summaries for the recap export
"""

from datetime import date as Date
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd

from core.errors import ValidationError
from core.grading import round_half_up
from core.schemas import ATTENDANCE_STATUSES, AttendanceRecord, SchoolClass, Student

UNKNOWN_CLASS_LABEL = "Kelas tidak ditemukan"

# Short month names as the id-ID locale prints them.
MONTHS_ID = ["Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agu", "Sep", "Okt", "Nov", "Des"]

STATUS_LABELS = {
    "present": "Hadir",
    "sick": "Sakit",
    "permission": "Izin",
    "absent": "Alfa",
}

_COLUMNS = ["class_id", "date", "student_username", "status"]


# ── Helpers ─────────────────────────────────────────────────────────

def _frame(records: Sequence[AttendanceRecord]) -> pd.DataFrame:
    rows = [
        {
            "class_id": r.class_id,
            "date": r.date,
            "student_username": r.student_username,
            "status": r.status,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=_COLUMNS)


def _status_counts(df: pd.DataFrame) -> Dict[str, int]:
    counts = df["status"].value_counts().reindex(list(ATTENDANCE_STATUSES), fill_value=0)
    return {status: int(counts[status]) for status in ATTENDANCE_STATUSES}


def _iso(day: Union[str, Date]) -> str:
    return day.isoformat() if isinstance(day, Date) else str(day)[:10]


def format_short_date(iso_date: str) -> str:
    """'2024-01-05' -> '05 Jan'. Unparseable input is returned unchanged."""
    try:
        parsed = Date.fromisoformat(str(iso_date)[:10])
    except ValueError:
        return str(iso_date)
    return f"{parsed.day:02d} {MONTHS_ID[parsed.month - 1]}"


def format_date_range(dates) -> str:
    """'' for no dates, one label for a single date, else 'first - last'."""
    unique = sorted({str(d) for d in dates if str(d)})
    if not unique:
        return ""
    if len(unique) == 1:
        return format_short_date(unique[0])
    return f"{format_short_date(unique[0])} - {format_short_date(unique[-1])}"


def attendance_rate(present: int, total: int) -> int:
    return round_half_up(present / total * 100) if total > 0 else 0


# ── Global Stats ────────────────────────────────────────────────────

def compute_global_stats(records: Sequence[AttendanceRecord]) -> Dict[str, Any]:
    """All-time, all-class figures; not filtered by the selected class/date."""
    df = _frame(records)
    counts = _status_counts(df)

    return {
        "totalPresent": counts["present"],
        "totalSick": counts["sick"],
        "totalPermission": counts["permission"],
        "totalAbsent": counts["absent"],
        "totalRecords": int(len(df)),
        "uniqueDatesCount": int(df["date"].nunique()),
        "uniqueStudentsCount": int(df["student_username"].nunique()),
        "dateRange": format_date_range(df["date"].tolist()),
    }


# ── Class Recap ─────────────────────────────────────────────────────

def _recap_row(class_id: str, class_name: str, total_students: int, df: pd.DataFrame) -> Dict[str, Any]:
    counts = _status_counts(df)
    total = int(len(df))
    return {
        "classId": class_id,
        "className": class_name,
        "totalStudents": total_students,
        "totalRecords": total,
        "presentCount": counts["present"],
        "sickCount": counts["sick"],
        "permissionCount": counts["permission"],
        "absentCount": counts["absent"],
        "attendanceRate": attendance_rate(counts["present"], total),
        "uniqueDates": int(df["date"].nunique()),
        "dateRange": format_date_range(df["date"].tolist()),
    }


def compute_class_recaps(
    records: Sequence[AttendanceRecord],
    classes: Sequence[SchoolClass],
    students: Sequence[Student],
) -> List[Dict[str, Any]]:
    """
    One recap per known class, zero-activity classes included, sorted by name.

    Records pointing at a class that is not in `classes` are gathered into a
    trailing "Kelas tidak ditemukan" row so every record lands in exactly one
    recap.
    """
    df = _frame(records)
    roster_sizes = pd.Series([s.class_id for s in students], dtype="object").value_counts()

    recaps = []
    known_ids = set()
    for cls in classes:
        known_ids.add(cls.id)
        class_df = df[df["class_id"] == cls.id]
        recaps.append(_recap_row(cls.id, cls.name, int(roster_sizes.get(cls.id, 0)), class_df))

    recaps.sort(key=lambda r: r["className"].casefold())

    orphans = df[~df["class_id"].isin(known_ids)]
    if not orphans.empty:
        recaps.append(_recap_row("", UNKNOWN_CLASS_LABEL, 0, orphans))

    return recaps


def participation_rate(recap: Dict[str, Any]) -> int:
    """Recorded entries against students x active days."""
    expected = recap["totalStudents"] * recap["uniqueDates"]
    if recap["totalRecords"] <= 0 or expected <= 0:
        return 0
    return round_half_up(recap["totalRecords"] / expected * 100)


# ── Daily View ──────────────────────────────────────────────────────

def has_attendance(records: Sequence[AttendanceRecord], class_id: str, day: Union[str, Date]) -> bool:
    iso = _iso(day)
    return any(r.class_id == class_id and r.date == iso for r in records)


def get_class_attendance_status(
    records: Sequence[AttendanceRecord],
    class_id: str,
    day: Union[str, Date],
    roster: Optional[Sequence[Student]] = None,
) -> Dict[str, Any]:
    """
    Completeness of one class on one date.

    The expected head count is the loaded roster when there is one; without
    it, the distinct usernames ever recorded for the class stand in. That
    estimate drifts when students join or leave.
    """
    df = _frame(records)
    class_df = df[df["class_id"] == class_id]
    recorded = int((class_df["date"] == _iso(day)).sum())

    if recorded == 0:
        return {"status": "not-taken", "count": 0, "total": 0}

    total = len(roster) if roster else int(class_df["student_username"].nunique())

    if total == 0:
        return {"status": "partial", "count": recorded, "total": recorded}
    if recorded >= total:
        return {"status": "complete", "count": recorded, "total": total}
    return {"status": "partial", "count": recorded, "total": total}


def status_map(records: Sequence[AttendanceRecord]) -> Dict[str, str]:
    """username -> status for the records of one class/date."""
    return {r.student_username: r.status for r in records}


def mark_all_present(roster: Sequence[Student]) -> Dict[str, str]:
    return {s.username: "present" for s in roster}


def validate_submission(class_id: str, statuses: Dict[str, str]) -> Dict[str, str]:
    """Check a daily attendance map before it is sent."""
    if not class_id:
        raise ValidationError("Pilih kelas terlebih dahulu", field="classId")
    if not statuses:
        raise ValidationError("Tidak ada data presensi untuk disimpan", field="attendance")

    bad = sorted(u for u, s in statuses.items() if s not in ATTENDANCE_STATUSES)
    if bad:
        raise ValidationError(f"Status presensi tidak valid untuk: {', '.join(bad)}", field="attendance")
    return dict(statuses)


# ── Student Summaries ───────────────────────────────────────────────

def student_summaries(
    records: Sequence[AttendanceRecord],
    students: Sequence[Student],
    classes: Sequence[SchoolClass],
    class_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Per-student totals for the whole roster, or one class of it."""
    df = _frame(records)
    if class_id:
        df = df[df["class_id"] == class_id]
        students = [s for s in students if s.class_id == class_id]

    class_names = {c.id: c.name for c in classes}
    grouped = {username: grp for username, grp in df.groupby("student_username")}

    rows = []
    for student in students:
        student_df = grouped.get(student.username, df.iloc[0:0])
        counts = _status_counts(student_df)
        total = int(len(student_df))
        rows.append(
            {
                "username": student.username,
                "fullName": student.full_name or student.username,
                "classId": student.class_id,
                "className": class_names.get(student.class_id, "Unknown"),
                "total": total,
                "present": counts["present"],
                "sick": counts["sick"],
                "permission": counts["permission"],
                "absent": counts["absent"],
                "rate": attendance_rate(counts["present"], total),
            }
        )
    return rows
