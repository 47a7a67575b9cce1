"""
report_builder.py — Spreadsheet exports.

Generates:
- Grade report        (Data Nilai + Ringkasan)
- Attendance recap    (per-student summary + Ringkasan)
- Class recap         (Rekap Per Kelas)
- Attendance records  (raw rows)
- Leaderboard         (gamification ranking)

Row builders are pure: same input and `exported_on` give the same rows. The
workbook itself is produced by a TableExporter (rows in, bytes out).
"""

import io
import numbers
import re
from datetime import date as Date
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows

from core.assignments import parse_due_date
from core.attendance import STATUS_LABELS, attendance_rate, participation_rate
from core.grading import percentage, round_half_up
from core.lookups import assignment_title, class_name, find_assignment, student_class_name, student_name
from core.schemas import AttendanceRecord, Assignment, Grade, SchoolClass, Student

Rows = List[Dict[str, Any]]
Sheets = Mapping[str, Rows]

GRADE_COLUMNS = [
    "No", "Nama Siswa", "Username", "Kelas", "Tugas", "Nilai", "Nilai Maksimal",
    "Persentase", "Feedback", "Tanggal Dinilai", "Tanggal Deadline",
]
ATTENDANCE_SUMMARY_COLUMNS = [
    "No", "Nama Siswa", "Username", "Kelas", "Total Hari", "Hadir", "Sakit", "Izin", "Alfa",
    "Persentase Kehadiran",
]
CLASS_RECAP_COLUMNS = [
    "Nama Kelas", "Total Siswa", "Total Records", "Hari Aktif", "Periode", "Hadir", "Sakit",
    "Izin", "Alfa", "Tingkat Kehadiran (%)", "Partisipasi (%)",
]
RECORD_COLUMNS = ["Tanggal", "Kelas", "Siswa", "Status", "Catatan"]
LEADERBOARD_COLUMNS = ["Peringkat", "Nama Siswa", "Username", "Kelas", "Poin", "Level", "Badge"]
SUMMARY_COLUMNS = ["Informasi", "Nilai"]

# Columns holding whole-number percentages; written with a "%" display format.
PERCENT_COLUMNS = {"Persentase", "Persentase Kehadiran"}


# ── Helpers ─────────────────────────────────────────────────────────

def _number(value: float):
    return int(value) if float(value).is_integer() else value


def format_date_id(value: str) -> str:
    """ISO date/time -> 'DD/MM/YYYY' (id-ID short form); '-' when empty or unparseable."""
    parsed = parse_due_date(value or "")
    if parsed is None:
        return "-" if not value else str(value)
    return parsed.strftime("%d/%m/%Y")


def _today(exported_on: Optional[Date]) -> Date:
    return exported_on or Date.today()


def safe_token(value: str, fallback: str = "item") -> str:
    """Filename-safe token: anything outside [A-Za-z0-9] becomes '_'."""
    token = re.sub(r"[^a-zA-Z0-9]", "_", str(value))
    return token or fallback


def sheet_title(value: str, fallback: str = "Data") -> str:
    """Excel sheet name: no \\ / * ? : [ ], at most 31 characters."""
    title = re.sub(r"[\\/*?:\[\]]", "-", str(value)).strip()[:31]
    return title or fallback


# ── Grades ──────────────────────────────────────────────────────────

def grade_export_rows(
    grades: Sequence[Grade],
    assignments: Sequence[Assignment],
    students: Sequence[Student],
    classes: Sequence[SchoolClass],
) -> Rows:
    rows = []
    for idx, grade in enumerate(grades, 1):
        assignment = find_assignment(grade.assignment_id, assignments)
        max_points = assignment.max_points if assignment else None
        pct = percentage(grade.points, max_points) if max_points else round_half_up(grade.points)

        rows.append(
            {
                "No": idx,
                "Nama Siswa": grade.student_name or student_name(grade.student_username, students),
                "Username": grade.student_username,
                "Kelas": student_class_name(
                    grade.student_username, students, classes, assignments, grades,
                    assignment_id=grade.assignment_id,
                ),
                "Tugas": assignment_title(grade.assignment_id, assignments),
                "Nilai": _number(grade.points),
                "Nilai Maksimal": _number(max_points) if max_points else 100,
                "Persentase": pct,
                "Feedback": grade.feedback or "-",
                "Tanggal Dinilai": format_date_id(grade.graded_at),
                "Tanggal Deadline": format_date_id(assignment.due_date) if assignment and assignment.due_date else "-",
            }
        )
    return rows


def grade_summary_rows(
    rows: Rows,
    class_label: str = "Semua Kelas",
    assignment_label: str = "Semua Tugas",
    exported_on: Optional[Date] = None,
) -> Rows:
    scores = pd.Series([r["Nilai"] for r in rows], dtype="float64")
    has_rows = not scores.empty
    return [
        {"Informasi": "Total Nilai", "Nilai": len(rows)},
        {"Informasi": "Rata-rata", "Nilai": round(float(scores.mean()), 2) if has_rows else 0},
        {"Informasi": "Nilai Tertinggi", "Nilai": _number(float(scores.max())) if has_rows else 0},
        {"Informasi": "Nilai Terendah", "Nilai": _number(float(scores.min())) if has_rows else 0},
        {"Informasi": "Tanggal Ekspor", "Nilai": _today(exported_on).strftime("%d/%m/%Y")},
        {"Informasi": "Filter Kelas", "Nilai": class_label},
        {"Informasi": "Filter Tugas", "Nilai": assignment_label},
    ]


def grade_report_filename(exported_on: Optional[Date] = None, class_label: Optional[str] = None,
                          assignment_label: Optional[str] = None) -> str:
    name = f"Laporan_Nilai_{_today(exported_on).isoformat()}"
    if class_label:
        name += f"_{safe_token(class_label)}"
    if assignment_label:
        name += f"_{safe_token(assignment_label)}"
    return f"{name}.xlsx"


def build_grade_report(
    grades: Sequence[Grade],
    assignments: Sequence[Assignment],
    students: Sequence[Student],
    classes: Sequence[SchoolClass],
    class_id: str = "all",
    assignment_id: str = "all",
    exported_on: Optional[Date] = None,
) -> Dict[str, Rows]:
    rows = grade_export_rows(grades, assignments, students, classes)
    class_label = "Semua Kelas" if class_id == "all" else class_name(class_id, classes)
    assignment_label = "Semua Tugas" if assignment_id == "all" else assignment_title(assignment_id, assignments)
    return {
        "Data Nilai": rows,
        "Ringkasan": grade_summary_rows(rows, class_label, assignment_label, exported_on),
    }


# ── Attendance ──────────────────────────────────────────────────────

def attendance_summary_rows(summaries: Sequence[Dict[str, Any]], class_label: Optional[str] = None) -> Rows:
    """Rows from attendance.student_summaries()."""
    return [
        {
            "No": idx,
            "Nama Siswa": s["fullName"],
            "Username": s["username"],
            "Kelas": class_label or s["className"],
            "Total Hari": s["total"],
            "Hadir": s["present"],
            "Sakit": s["sick"],
            "Izin": s["permission"],
            "Alfa": s["absent"],
            "Persentase Kehadiran": s["rate"],
        }
        for idx, s in enumerate(summaries, 1)
    ]


def attendance_totals_rows(
    records: Sequence[AttendanceRecord],
    student_count: int,
    class_label: Optional[str] = None,
    class_count: int = 0,
    exported_on: Optional[Date] = None,
) -> Rows:
    statuses = pd.Series([r.status for r in records], dtype="object").value_counts()
    total = len(records)
    present = int(statuses.get("present", 0))

    header = (
        [{"Informasi": "Kelas", "Nilai": class_label}, {"Informasi": "Jumlah Siswa", "Nilai": student_count}]
        if class_label
        else [{"Informasi": "Total Siswa", "Nilai": student_count}, {"Informasi": "Total Kelas", "Nilai": class_count}]
    )
    return header + [
        {"Informasi": "Tanggal Export", "Nilai": _today(exported_on).strftime("%d/%m/%Y")},
        {"Informasi": "Total Records", "Nilai": total},
        {"Informasi": "Total Hadir", "Nilai": present},
        {"Informasi": "Total Sakit", "Nilai": int(statuses.get("sick", 0))},
        {"Informasi": "Total Izin", "Nilai": int(statuses.get("permission", 0))},
        {"Informasi": "Total Alfa", "Nilai": int(statuses.get("absent", 0))},
        {"Informasi": "Tingkat Kehadiran Keseluruhan", "Nilai": f"{attendance_rate(present, total)}%"},
    ]


def build_attendance_report(
    summaries: Sequence[Dict[str, Any]],
    records: Sequence[AttendanceRecord],
    classes: Sequence[SchoolClass],
    class_id: Optional[str] = None,
    exported_on: Optional[Date] = None,
) -> Dict[str, Rows]:
    """Per-student recap for one class (class_id) or every class."""
    class_label = class_name(class_id, classes) if class_id else None
    target = [r for r in records if r.class_id == class_id] if class_id else list(records)
    sheet = class_label or "Semua Kelas"
    return {
        sheet: attendance_summary_rows(summaries, class_label),
        "Ringkasan": attendance_totals_rows(target, len(summaries), class_label, len(classes), exported_on),
    }


def attendance_report_filename(class_label: Optional[str] = None, exported_on: Optional[Date] = None) -> str:
    day = _today(exported_on).isoformat()
    if class_label:
        return f"rekap_presensi_{'_'.join(class_label.split())}_{day}.xlsx"
    return f"rekap_presensi_semua_kelas_{day}.xlsx"


def class_recap_rows(recaps: Sequence[Dict[str, Any]]) -> Rows:
    return [
        {
            "Nama Kelas": r["className"],
            "Total Siswa": r["totalStudents"],
            "Total Records": r["totalRecords"],
            "Hari Aktif": r["uniqueDates"],
            "Periode": r["dateRange"],
            "Hadir": r["presentCount"],
            "Sakit": r["sickCount"],
            "Izin": r["permissionCount"],
            "Alfa": r["absentCount"],
            "Tingkat Kehadiran (%)": r["attendanceRate"],
            "Partisipasi (%)": participation_rate(r),
        }
        for r in recaps
    ]


def class_recap_filename(exported_on: Optional[Date] = None) -> str:
    return f"rekap_presensi_per_kelas_{_today(exported_on).isoformat()}.xlsx"


def attendance_record_rows(records: Sequence[AttendanceRecord], classes: Sequence[SchoolClass]) -> Rows:
    names = {c.id: c.name for c in classes}
    return [
        {
            "Tanggal": r.date,
            "Kelas": names.get(r.class_id, "Unknown"),
            "Siswa": r.student_username,
            "Status": STATUS_LABELS.get(r.status, r.status),
            "Catatan": r.notes,
        }
        for r in records
    ]


def attendance_records_filename(exported_on: Optional[Date] = None) -> str:
    return f"presensi_{_today(exported_on).isoformat()}.xlsx"


# ── Gamification ────────────────────────────────────────────────────

def leaderboard_rows(entries: Sequence[Dict[str, Any]], classes: Sequence[SchoolClass]) -> Rows:
    names = {c.id: c.name for c in classes}
    return [
        {
            "Peringkat": e["rank"],
            "Nama Siswa": e["fullName"],
            "Username": e["username"],
            "Kelas": names.get(e.get("classId", ""), "Unknown"),
            "Poin": e["points"],
            "Level": e["level"],
            "Badge": e["badges"],
        }
        for e in entries
    ]


def leaderboard_filename(exported_on: Optional[Date] = None) -> str:
    return f"peringkat_gamifikasi_{_today(exported_on).isoformat()}.xlsx"


# ── Workbook ────────────────────────────────────────────────────────

class TableExporter:
    """Sheets of flat rows in, file bytes out."""

    media_type = "application/octet-stream"

    def to_bytes(self, sheets: Sheets) -> bytes:
        raise NotImplementedError

    def write(self, sheets: Sheets, output_path: str) -> None:
        with open(output_path, "wb") as fh:
            fh.write(self.to_bytes(sheets))


class ExcelExporter(TableExporter):
    """openpyxl workbook: styled header, borders, frozen header, fitted widths."""

    media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _style_sheet(self, ws, columns: List[str]) -> None:
        for cell in ws[1]:
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = self.thin_border

        pct_idx = [i for i, name in enumerate(columns) if name in PERCENT_COLUMNS]
        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = self.thin_border
            for i in pct_idx:
                if isinstance(row[i].value, numbers.Number):
                    row[i].number_format = '0"%"'

        ws.freeze_panes = "A2"

        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 40)

    def to_bytes(self, sheets: Sheets) -> bytes:
        wb = Workbook()
        if sheets:
            wb.remove(wb.active)

        for title, rows in sheets.items():
            ws = wb.create_sheet(title=sheet_title(title))
            df = pd.DataFrame(list(rows))
            if df.empty:
                ws.append(["Tidak ada data"])
                continue
            for row in dataframe_to_rows(df, index=False, header=True):
                ws.append(row)
            self._style_sheet(ws, list(df.columns))

        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()
