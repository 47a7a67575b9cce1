"""
Tests for the HTTP routes — payload handling, error mapping and live endpoints.
"""

import io
import json
import logging
import os
import sys
from urllib.parse import parse_qs

import httpx
import pandas as pd
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.api_client import SheetApiClient
from core.logging_config import JSONFormatter
from main import app
from routes.deps import get_api_client

SAMPLE_JSON = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_school.json")
API_URL = "https://sheets.example.test/exec"


@pytest.fixture
def raw():
    with open(SAMPLE_JSON, encoding="utf-8") as fh:
        return json.load(fh)


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sheet(raw):
    """Route live endpoints to an in-memory sheet that answers from the sample data."""
    calls = []
    responses = {
        "getClasses": {"success": True, "classes": raw["classes"]},
        "getStudentsFromSheet": {"success": True, "students": raw["students"]},
        "getAllAttendance": {"success": True, "attendance": raw["attendance"]},
        "getGamification": {"success": True, "data": raw["gamification"]},
        "getLevels": {"success": True, "levels": raw["levels"]},
        "getBadges": {"success": True, "badges": raw["badges"]},
        "getAssignments": {"success": True, "assignments": raw["assignments"]},
        "awardPoints": {"success": True, "newTotal": 1100},
        "getAssignmentGrades": {"success": True, "grades": [
            {"assignmentId": "a2", "studentUsername": "andi", "points": 40},
            {"assignmentId": "a2", "studentUsername": "budi", "points": 45},
        ]},
        "getStudentsByClass": {"success": True, "students": [
            {"username": "andi", "classId": "c1"}, {"username": "budi", "classId": "c1"},
        ]},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        calls.append(form)
        if form.get("id") == "broken":
            return httpx.Response(200, json={"success": False, "error": "Data tidak ditemukan"})
        return httpx.Response(200, json=responses.get(form["action"], {"success": True}))

    async def override():
        async with SheetApiClient(API_URL, transport=httpx.MockTransport(handler)) as api:
            yield api

    app.dependency_overrides[get_api_client] = override
    return calls


class TestMeta:
    def test_health(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        assert res.json()["status"] == "ok"
        assert "X-Request-ID" in res.headers

    def test_request_id_echoed(self, client):
        res = client.get("/api/health", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"

    def test_json_log_format(self):
        record = logging.LogRecord("access", logging.INFO, __file__, 1, "GET %s", ("/api/health",), None)
        record.request_id = "r1"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "GET /api/health"
        assert entry["request_id"] == "r1"
        assert entry["level"] == "INFO"

    def test_config(self, client):
        body = client.get("/api/config").json()
        assert [t["status"] for t in body["status_thresholds"]] == ["excellent", "good", "fair", "poor"]
        assert body["default_level_thresholds"][0] == 100


class TestGradeRoutes:
    def test_enrich(self, client, raw):
        res = client.post("/api/grades/enrich", json=raw)
        assert res.status_code == 200
        assert [g["status"] for g in res.json()["grades"]] == ["excellent", "fair", "good", "poor"]

    def test_missing_grades(self, client):
        res = client.post("/api/grades/enrich", json={})
        assert res.status_code == 400

    def test_stats_with_filter(self, client, raw):
        res = client.post("/api/grades/stats", json={**raw, "classId": "c2"})
        assert res.json()["total"] == 1

    def test_pending(self, client, raw):
        body = client.post("/api/grades/pending", json=raw).json()
        assert body["count"] == 2

    def test_bulk_create_rejects_bad_score(self, client, sheet):
        res = client.post("/api/grades/bulk-create", json={
            "assignmentId": "a2",
            "grades": [{"studentUsername": "budi", "points": "150"}],
        })
        assert res.status_code == 422
        assert res.json()["detail"] == "Nilai harus berupa angka antara 0-100"
        assert sheet == []

    def test_bulk_create_then_auto_complete(self, client, sheet):
        res = client.post("/api/grades/bulk-create", json={
            "assignmentId": "a2",
            "grades": [
                {"studentUsername": "budi", "points": "45", "feedback": "Baik"},
                {"studentUsername": "andi", "points": ""},
            ],
        })
        body = res.json()
        assert res.status_code == 200
        assert body["successful"] == 1
        assert body["autoCompleted"].startswith('Tugas "Kuis Matematika"')
        assert [c["action"] for c in sheet].count("createGrade") == 1

    def test_bulk_delete_partial(self, client, sheet):
        res = client.post("/api/grades/bulk-delete", json={"ids": ["g1", "broken", "g3"]})
        body = res.json()
        assert res.status_code == 200
        assert (body["successful"], body["failed"]) == (2, 1)
        assert body["message"] == "2 berhasil, 1 gagal"

    def test_bulk_delete_nothing_selected(self, client, sheet):
        assert client.post("/api/grades/bulk-delete", json={"ids": []}).status_code == 422


class TestGamificationRoutes:
    def test_reconcile(self, client, raw):
        body = client.post("/api/gamification/reconcile", json={
            "students": raw["students"], "records": raw["gamification"], "classes": raw["classes"],
        }).json()
        assert len(body["students"]) == 4
        assert body["students"][0]["id"] == "c1-andi"

    def test_resolve_level(self, client, raw):
        body = client.post("/api/gamification/resolve-level", json={"points": 250, "levels": raw["levels"]}).json()
        assert body["level"]["name"] == "Pelajar"
        assert body["levelNumber"] == 2

    def test_resolve_level_default_curve(self, client):
        body = client.post("/api/gamification/resolve-level", json={"points": 150}).json()
        assert body["level"] is None
        assert body["levelNumber"] == 2
        assert body["progress"]["progress"] == pytest.approx(25.0)

    def test_user_stats(self, client, raw):
        body = client.post("/api/gamification/user-stats", json={
            "username": "citra", "records": raw["gamification"],
        }).json()
        assert body["rank"] == 1

    def test_award_points_with_level_up(self, client, sheet):
        res = client.post("/api/gamification/award-points", json={
            "studentIds": ["c1-andi"], "points": 50, "reason": "Aktif",
        })
        assert res.status_code == 200
        assert res.json()["successful"] == 1
        level_update = next(c for c in sheet if c["action"] == "updateStudentLevel")
        assert level_update["studentUsername"] == "andi"
        assert level_update["level"] == "3"

    def test_award_points_unknown_student_counted_as_failure(self, client, sheet):
        res = client.post("/api/gamification/award-points", json={
            "studentIds": ["c1-andi", "c1-ghost"], "points": 10,
        })
        body = res.json()
        assert res.status_code == 200
        assert (body["successful"], body["failed"]) == (1, 1)
        assert body["failures"] == [{"item": "c1-ghost", "error": "Siswa tidak ditemukan"}]
        assert body["message"] == "1 berhasil, 1 gagal"
        assert [c["action"] for c in sheet].count("awardPoints") == 1

    def test_award_badge_unknown_student_counted_as_failure(self, client, sheet, raw):
        badge_id = raw["badges"][0]["id"]
        body = client.post("/api/gamification/award-badge", json={
            "studentIds": ["c2-citra", "c9-nobody"], "badgeId": badge_id,
        }).json()
        assert (body["successful"], body["failed"]) == (1, 1)
        assert body["failures"][0]["item"] == "c9-nobody"

    def test_award_points_invalid_amount(self, client, sheet):
        res = client.post("/api/gamification/award-points", json={"studentIds": ["c1-andi"], "points": 0})
        assert res.status_code == 422

    def test_award_unknown_badge(self, client, sheet):
        res = client.post("/api/gamification/award-badge", json={"studentIds": ["c1-andi"], "badgeId": "zz"})
        assert res.status_code == 422
        assert res.json()["detail"] == "Badge tidak ditemukan"


class TestAttendanceRoutes:
    def test_recap(self, client, raw):
        body = client.post("/api/attendance/recap", json={
            "records": raw["attendance"], "classes": raw["classes"], "students": raw["students"],
        }).json()
        assert sum(r["totalRecords"] for r in body["recaps"]) == len(raw["attendance"])

    def test_status(self, client, raw):
        body = client.post("/api/attendance/status", json={
            "records": raw["attendance"], "students": raw["students"], "classId": "c1", "date": "2024-01-09",
        }).json()
        assert body == {"status": "partial", "count": 1, "total": 2}

    def test_bad_date(self, client, raw):
        res = client.post("/api/attendance/status", json={"classId": "c1", "date": "kemarin"})
        assert res.status_code == 400

    def test_live_dashboard(self, client, sheet):
        res = client.get("/api/attendance/live-dashboard", params={"classId": "c2", "date": "2024-01-08"})
        body = res.json()
        assert res.status_code == 200
        assert body["day_completeness"]["status"] == "complete"
        assert body["stats"]["totalRecords"] == 6

    def test_save_mark_all_present(self, client, sheet):
        res = client.post("/api/attendance/save", json={
            "classId": "c1", "date": "2024-01-11", "markAllPresent": True,
        })
        assert res.json()["saved"] == 2
        update = next(c for c in sheet if c["action"] == "updateAttendance")
        assert json.loads(update["attendance"]) == {"andi": "present", "budi": "present"}

    def test_save_requires_class(self, client, sheet):
        res = client.post("/api/attendance/save", json={"attendance": {"andi": "present"}})
        assert res.status_code == 422
        assert res.json()["detail"] == "Pilih kelas terlebih dahulu"


class TestAssignmentRoutes:
    def test_dashboard(self, client, raw):
        body = client.post("/api/assignments/dashboard", json={
            "assignments": raw["assignments"], "classes": raw["classes"], "sortBy": "title",
        }).json()
        assert [a["title"] for a in body["assignments"]][0] == "Esai Sejarah"
        assert body["stats"]["total"] == 3

    def test_auto_complete(self, client, sheet):
        body = client.post("/api/assignments/a2/auto-complete").json()
        assert body["completed"] is True

    def test_auto_complete_unknown(self, client, sheet):
        assert client.post("/api/assignments/zz/auto-complete").status_code == 404

    def test_upstream_failure_is_502(self, client):
        def handler(request):
            return httpx.Response(503)

        async def override():
            async with SheetApiClient(API_URL, transport=httpx.MockTransport(handler)) as api:
                yield api

        app.dependency_overrides[get_api_client] = override
        res = client.post("/api/assignments/a1/auto-complete")
        assert res.status_code == 502
        assert res.json()["detail"] == "HTTP 503"


class TestReportRoutes:
    def test_grades_excel(self, client, raw):
        res = client.post("/api/reports/grades-excel", json={**raw, "classId": "c1"})
        assert res.status_code == 200
        assert "Laporan_Nilai_" in res.headers["content-disposition"]
        frames = pd.read_excel(io.BytesIO(res.content), sheet_name=None)
        assert len(frames["Data Nilai"]) == 3

    def test_grades_excel_empty(self, client, raw):
        res = client.post("/api/reports/grades-excel", json={**raw, "assignmentId": "zz"})
        assert res.status_code == 400

    def test_recap_excel(self, client, raw):
        res = client.post("/api/reports/recap-excel", json={
            "records": raw["attendance"], "classes": raw["classes"], "students": raw["students"],
        })
        frames = pd.read_excel(io.BytesIO(res.content), sheet_name=None)
        assert len(frames["Rekap Per Kelas"]) == 3

    def test_attendance_excel_class_name_with_brackets(self, client, raw):
        res = client.post("/api/reports/attendance-excel", json={
            "records": raw["attendance"], "students": raw["students"],
            "classes": [{"id": "c1", "name": "Kelas [A]"}], "classId": "c1",
        })
        assert res.status_code == 200
        frames = pd.read_excel(io.BytesIO(res.content), sheet_name=None)
        assert list(frames) == ["Kelas -A-", "Ringkasan"]
        assert len(frames["Kelas -A-"]) == 2

    def test_records_excel_sheet(self, client, raw):
        res = client.post("/api/reports/records-excel", json={
            "records": raw["attendance"], "classes": raw["classes"],
        })
        frames = pd.read_excel(io.BytesIO(res.content), sheet_name=None)
        assert list(frames) == ["Data Presensi"]
        assert len(frames["Data Presensi"]) == len(raw["attendance"])

    def test_leaderboard_excel(self, client, raw):
        res = client.post("/api/reports/leaderboard-excel", json={
            "records": raw["gamification"], "students": raw["students"], "classes": raw["classes"],
        })
        assert res.status_code == 200
        assert "peringkat_gamifikasi_" in res.headers["content-disposition"]
