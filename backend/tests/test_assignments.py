"""
Tests for core/assignments.py — derived status, stats, pending grades, auto-complete.
"""

import asyncio
import json
import os
import sys
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.api_client import SheetApiClient
from core.assignments import (
    all_students_graded,
    assignment_stats,
    check_auto_complete,
    derive_status,
    parse_due_date,
    pending_grades,
    sort_assignments,
    with_statuses,
)
from core.schemas import Assignment, Grade, SchoolClass, Student, parse_list

SAMPLE_JSON = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_school.json")
NOW = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)
API_URL = "https://sheets.example.test/exec"


@pytest.fixture
def sample():
    with open(SAMPLE_JSON, encoding="utf-8") as fh:
        raw = json.load(fh)
    return {
        "classes": parse_list(SchoolClass, raw["classes"]),
        "students": parse_list(Student, raw["students"]),
        "assignments": parse_list(Assignment, raw["assignments"]),
        "grades": parse_list(Grade, raw["grades"]),
    }


def _fake_sheet(responses, calls):
    """MockTransport handler answering by `action` and recording every form."""

    def handler(request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        calls.append(form)
        return httpx.Response(200, json=responses.get(form["action"], {"success": True}))

    return httpx.MockTransport(handler)


class TestDeriveStatus:
    def test_past_due_is_overdue(self, sample):
        assert derive_status(sample["assignments"][0], NOW) == "overdue"

    def test_future_due_is_active(self, sample):
        assert derive_status(sample["assignments"][1], NOW) == "active"

    def test_completed_is_terminal(self, sample):
        assert derive_status(sample["assignments"][2], datetime(2030, 1, 1, tzinfo=timezone.utc)) == "completed"

    def test_missing_due_date_stays_active(self):
        assert derive_status(Assignment(id="x", dueDate=""), NOW) == "active"

    def test_naive_now_treated_as_utc(self, sample):
        assert derive_status(sample["assignments"][0], datetime(2024, 1, 10)) == "active"

    def test_parse_due_date(self):
        assert parse_due_date("2024-01-15T10:00:00.000Z") == datetime(2024, 1, 15, 10, tzinfo=timezone.utc)
        assert parse_due_date("soon") is None


class TestBoard:
    def test_rows_have_class_and_status(self, sample):
        rows = with_statuses(sample["assignments"], sample["classes"], NOW)
        assert rows[0]["className"] == "Kelas 7A"
        assert [r["status"] for r in rows] == ["overdue", "active", "completed"]

    def test_blank_max_points_defaults_to_100(self, sample):
        assert sample["assignments"][2].max_points == 100

    def test_sort_by_due_date(self, sample):
        rows = with_statuses(sample["assignments"], sample["classes"], NOW)
        assert [r["id"] for r in sort_assignments(rows)] == ["a1", "a3", "a2"]
        assert [r["id"] for r in sort_assignments(rows, "dueDate", descending=True)] == ["a2", "a3", "a1"]

    def test_sort_by_status_and_title(self, sample):
        rows = with_statuses(sample["assignments"], sample["classes"], NOW)
        assert [r["status"] for r in sort_assignments(rows, "status")] == ["overdue", "active", "completed"]
        assert [r["title"] for r in sort_assignments(rows, "title")][0] == "Esai Sejarah"

    def test_stats(self, sample):
        stats = assignment_stats(sample["assignments"], NOW)
        assert stats == {
            "total": 3, "active": 1, "overdue": 1, "completed": 1,
            "thisWeek": 0, "averagePoints": 83,
        }

    def test_stats_empty(self):
        assert assignment_stats([], NOW)["averagePoints"] == 0


class TestPendingGrades:
    def test_all(self, sample):
        rows = pending_grades(sample["assignments"], sample["students"], sample["grades"], sample["classes"])
        assert {(r["studentUsername"], r["assignmentId"]) for r in rows} == {("budi", "a2"), ("dewi", "a3")}

    def test_class_filter(self, sample):
        rows = pending_grades(sample["assignments"], sample["students"], sample["grades"],
                              sample["classes"], class_id="c2")
        assert [r["assignmentClassName"] for r in rows] == ["Kelas 7B"]

    def test_all_students_graded(self, sample):
        roster = [s for s in sample["students"] if s.class_id == "c1"]
        a1_grades = [g for g in sample["grades"] if g.assignment_id == "a1"]
        a2_grades = [g for g in sample["grades"] if g.assignment_id == "a2"]
        assert all_students_graded(a1_grades, roster)
        assert not all_students_graded(a2_grades, roster)

    def test_empty_roster_never_complete(self):
        assert not all_students_graded([], [])


class TestAutoComplete:
    def _client(self, responses, calls):
        return SheetApiClient(API_URL, transport=_fake_sheet(responses, calls))

    def test_scenario_overdue_then_completed(self, sample):
        assignment = sample["assignments"][0]
        assert derive_status(assignment, NOW) == "overdue"

        calls = []
        responses = {
            "getAssignmentGrades": {"success": True, "grades": [
                {"assignmentId": "a1", "studentUsername": "andi", "points": 90},
                {"assignmentId": "a1", "studentUsername": "budi", "points": 65},
            ]},
            "getStudentsByClass": {"success": True, "students": [
                {"username": "andi", "classId": "c1"}, {"username": "budi", "classId": "c1"},
            ]},
        }

        async def run():
            async with self._client(responses, calls) as client:
                return await check_auto_complete(client, assignment)

        message = asyncio.run(run())
        assert message == 'Tugas "Esai Sejarah" otomatis ditandai selesai karena semua siswa sudah dinilai!'
        update = next(c for c in calls if c["action"] == "updateAssignmentStatus")
        assert update == {"action": "updateAssignmentStatus", "id": "a1", "status": "completed"}

    def test_not_everyone_graded(self, sample):
        calls = []
        responses = {
            "getAssignmentGrades": {"success": True, "grades": [
                {"assignmentId": "a2", "studentUsername": "andi", "points": 40},
            ]},
            "getStudentsByClass": {"success": True, "students": [
                {"username": "andi", "classId": "c1"}, {"username": "budi", "classId": "c1"},
            ]},
        }

        async def run():
            async with self._client(responses, calls) as client:
                return await check_auto_complete(client, sample["assignments"][1])

        assert asyncio.run(run()) is None
        assert all(c["action"] != "updateAssignmentStatus" for c in calls)

    def test_already_completed_skips_requests(self, sample):
        calls = []

        async def run():
            async with self._client({}, calls) as client:
                return await check_auto_complete(client, sample["assignments"][2])

        assert asyncio.run(run()) is None
        assert calls == []

    def test_fetch_failure_leaves_assignment(self, sample):
        calls = []
        responses = {"getAssignmentGrades": {"success": False, "error": "Sheet locked"}}

        async def run():
            async with self._client(responses, calls) as client:
                return await check_auto_complete(client, sample["assignments"][0])

        assert asyncio.run(run()) is None
        assert all(c["action"] != "updateAssignmentStatus" for c in calls)
