"""
Tests for core/report_builder.py — export rows, summaries, filenames and the Excel workbook.
"""

import io
import json
import os
import sys
import tempfile
from datetime import date

import pytest
import pandas as pd
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.attendance import compute_class_recaps, student_summaries
from core.gamification import leaderboard
from core.report_builder import (
    CLASS_RECAP_COLUMNS,
    GRADE_COLUMNS,
    ExcelExporter,
    attendance_record_rows,
    attendance_report_filename,
    build_attendance_report,
    build_grade_report,
    class_recap_rows,
    format_date_id,
    grade_export_rows,
    grade_report_filename,
    leaderboard_rows,
    safe_token,
    sheet_title,
)
from core.schemas import (
    AttendanceRecord, Assignment, GamificationRecord, Grade, SchoolClass, Student, parse_list,
)

SAMPLE_JSON = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_school.json")
EXPORTED_ON = date(2024, 2, 1)


@pytest.fixture
def sample():
    with open(SAMPLE_JSON, encoding="utf-8") as fh:
        raw = json.load(fh)
    return {
        "classes": parse_list(SchoolClass, raw["classes"]),
        "students": parse_list(Student, raw["students"]),
        "assignments": parse_list(Assignment, raw["assignments"]),
        "grades": parse_list(Grade, raw["grades"]),
        "attendance": parse_list(AttendanceRecord, raw["attendance"]),
        "gamification": parse_list(GamificationRecord, raw["gamification"]),
    }


@pytest.fixture
def grade_sheets(sample):
    return build_grade_report(
        sample["grades"], sample["assignments"], sample["students"], sample["classes"],
        exported_on=EXPORTED_ON,
    )


class TestGradeReport:
    def test_columns_and_rows(self, grade_sheets):
        rows = grade_sheets["Data Nilai"]
        assert list(rows[0].keys()) == GRADE_COLUMNS
        assert len(rows) == 4
        assert [r["No"] for r in rows] == [1, 2, 3, 4]

    def test_first_row(self, grade_sheets):
        row = grade_sheets["Data Nilai"][0]
        assert row["Nama Siswa"] == "Andi Pratama"
        assert row["Kelas"] == "Kelas 7A"
        assert row["Tugas"] == "Esai Sejarah"
        assert row["Nilai"] == 90
        assert row["Persentase"] == 90
        assert row["Tanggal Dinilai"] == "16/01/2024"
        assert row["Tanggal Deadline"] == "15/01/2024"

    def test_fallbacks(self, grade_sheets):
        row = grade_sheets["Data Nilai"][1]
        assert row["Nama Siswa"] == "Budi Santoso"
        assert row["Feedback"] == "-"
        assert row["Tanggal Dinilai"] == "-"

    def test_name_falls_back_to_username(self, sample):
        grades = [
            Grade(assignmentId="a1", studentUsername="dewi", points=50),
            Grade(assignmentId="a1", studentUsername="ghost", points=50),
        ]
        rows = grade_export_rows(grades, sample["assignments"], sample["students"], sample["classes"])
        assert [r["Nama Siswa"] for r in rows] == ["dewi", "ghost"]

    def test_percentage_against_max(self, grade_sheets):
        row = grade_sheets["Data Nilai"][2]
        assert (row["Nilai"], row["Nilai Maksimal"], row["Persentase"]) == (40, 50, 80)

    def test_summary(self, grade_sheets):
        summary = {r["Informasi"]: r["Nilai"] for r in grade_sheets["Ringkasan"]}
        assert summary["Total Nilai"] == 4
        assert summary["Nilai Tertinggi"] == 90
        assert summary["Nilai Terendah"] == 40
        assert summary["Tanggal Ekspor"] == "01/02/2024"
        assert summary["Filter Kelas"] == "Semua Kelas"

    def test_idempotent(self, sample, grade_sheets):
        again = build_grade_report(
            sample["grades"], sample["assignments"], sample["students"], sample["classes"],
            exported_on=EXPORTED_ON,
        )
        assert again == grade_sheets

    def test_filename(self):
        assert grade_report_filename(EXPORTED_ON) == "Laporan_Nilai_2024-02-01.xlsx"
        assert grade_report_filename(EXPORTED_ON, "Kelas 7A", "Esai/Sejarah") == \
            "Laporan_Nilai_2024-02-01_Kelas_7A_Esai_Sejarah.xlsx"


class TestAttendanceReport:
    def test_one_class(self, sample):
        summaries = student_summaries(sample["attendance"], sample["students"], sample["classes"], "c1")
        sheets = build_attendance_report(summaries, sample["attendance"], sample["classes"], "c1", EXPORTED_ON)
        assert list(sheets) == ["Kelas 7A", "Ringkasan"]
        totals = {r["Informasi"]: r["Nilai"] for r in sheets["Ringkasan"]}
        assert totals["Jumlah Siswa"] == 2
        assert totals["Total Records"] == 3
        assert totals["Tingkat Kehadiran Keseluruhan"] == "67%"

    def test_all_classes(self, sample):
        summaries = student_summaries(sample["attendance"], sample["students"], sample["classes"])
        sheets = build_attendance_report(summaries, sample["attendance"], sample["classes"], None, EXPORTED_ON)
        totals = {r["Informasi"]: r["Nilai"] for r in sheets["Ringkasan"]}
        assert "Semua Kelas" in sheets
        assert totals["Total Kelas"] == 2
        assert totals["Total Records"] == 6

    def test_filenames(self):
        assert attendance_report_filename("Kelas 7A", EXPORTED_ON) == "rekap_presensi_Kelas_7A_2024-02-01.xlsx"
        assert attendance_report_filename(None, EXPORTED_ON) == "rekap_presensi_semua_kelas_2024-02-01.xlsx"

    def test_class_recap_rows(self, sample):
        recaps = compute_class_recaps(sample["attendance"], sample["classes"], sample["students"])
        rows = class_recap_rows(recaps)
        assert list(rows[0].keys()) == CLASS_RECAP_COLUMNS
        assert rows[0]["Partisipasi (%)"] == 75

    def test_record_rows(self, sample):
        rows = attendance_record_rows(sample["attendance"], sample["classes"])
        assert rows[1]["Status"] == "Sakit"
        assert rows[1]["Catatan"] == "Demam"
        assert rows[5]["Kelas"] == "Unknown"


class TestLeaderboardRows:
    def test_rows(self, sample):
        entries = leaderboard(sample["gamification"], sample["students"])
        rows = leaderboard_rows(entries, sample["classes"])
        assert rows[0]["Peringkat"] == 1
        assert rows[0]["Nama Siswa"] == "Citra Lestari"
        assert rows[0]["Kelas"] == "Kelas 7B"


class TestHelpers:
    def test_format_date_id(self):
        assert format_date_id("2024-01-05") == "05/01/2024"
        assert format_date_id("") == "-"
        assert format_date_id("besok") == "besok"

    def test_safe_token(self):
        assert safe_token("Kelas 7A/B") == "Kelas_7A_B"
        assert safe_token("") == "item"


class TestExcelExporter:
    def test_workbook_reads_back(self, grade_sheets):
        data = ExcelExporter().to_bytes(grade_sheets)
        frames = pd.read_excel(io.BytesIO(data), sheet_name=None)
        assert list(frames) == ["Data Nilai", "Ringkasan"]
        assert len(frames["Data Nilai"]) == 4
        assert list(frames["Data Nilai"].columns) == GRADE_COLUMNS

    def test_header_styled_and_frozen(self, grade_sheets):
        wb = load_workbook(io.BytesIO(ExcelExporter().to_bytes(grade_sheets)))
        ws = wb["Data Nilai"]
        assert ws.freeze_panes == "A2"
        assert ws["A1"].font.bold
        pct_col = GRADE_COLUMNS.index("Persentase") + 1
        assert ws.cell(row=2, column=pct_col).number_format == '0"%"'

    def test_empty_sheet_gets_placeholder(self):
        wb = load_workbook(io.BytesIO(ExcelExporter().to_bytes({"Kosong": []})))
        assert wb["Kosong"]["A1"].value == "Tidak ada data"

    def test_write_to_disk(self, grade_sheets):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "nilai.xlsx")
            ExcelExporter().write(grade_sheets, path)
            assert os.path.exists(path)
            assert os.path.getsize(path) > 0

    def test_sheet_title_strips_forbidden_characters(self):
        assert sheet_title("Kelas [A]") == "Kelas -A-"
        assert sheet_title("7A/7B: Pagi?") == "7A-7B- Pagi-"
        assert sheet_title("x" * 40) == "x" * 31
        assert sheet_title("") == "Data"

    def test_class_name_with_brackets_as_sheet(self, sample):
        classes = [SchoolClass(id="c9", name="Kelas [A]")]
        summaries = student_summaries(sample["attendance"], sample["students"], classes, "c9")
        sheets = build_attendance_report(summaries, sample["attendance"], classes, "c9", EXPORTED_ON)
        wb = load_workbook(io.BytesIO(ExcelExporter().to_bytes(sheets)))
        assert wb.sheetnames == ["Kelas -A-", "Ringkasan"]
