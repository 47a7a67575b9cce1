"""
api_client.py — Client for the spreadsheet-backed school data API.

The API is a single endpoint taking form-encoded POSTs with an `action`
field and answering with an envelope:

    {"success": true,  ...payload}
    {"success": false, "error": "..."}

Every response is decoded once into an ApiResult here; callers branch on
`result.ok` and never inspect the raw envelope.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    NETWORK = "network"
    API = "api"
    VALIDATION = "validation"


@dataclass
class ApiResult:
    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, data: Optional[Dict[str, Any]] = None) -> "ApiResult":
        return cls(ok=True, data=data or {})

    @classmethod
    def failure(cls, kind: ErrorKind, error: str) -> "ApiResult":
        return cls(ok=False, error=error, kind=kind)

    def items(self, key: str) -> list:
        """List payload under `key`, empty when absent or on failure."""
        if not self.ok:
            return []
        value = self.data.get(key)
        return value if isinstance(value, list) else []


def decode_envelope(payload: Any) -> ApiResult:
    """Turn a parsed JSON body into an ApiResult."""
    if not isinstance(payload, dict):
        return ApiResult.failure(ErrorKind.API, "Respons API tidak valid")
    if payload.get("success"):
        data = {k: v for k, v in payload.items() if k != "success"}
        return ApiResult.success(data)
    return ApiResult.failure(ErrorKind.API, str(payload.get("error") or "Permintaan gagal"))


class SheetApiClient:
    """Async client; one instance per request scope or app lifetime."""

    def __init__(self, base_url: str, timeout: float = 20.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True)

    @classmethod
    def from_env(cls) -> "SheetApiClient":
        base_url = os.getenv("SHEET_API_URL", "").strip()
        timeout = float(os.getenv("API_TIMEOUT_SECONDS", "20"))
        return cls(base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SheetApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def request(self, action: str, **params: Any) -> ApiResult:
        if not self.base_url:
            return ApiResult.failure(ErrorKind.NETWORK, "SHEET_API_URL belum dikonfigurasi")

        form = {"action": action}
        for key, value in params.items():
            if value is None:
                continue
            form[key] = str(value).lower() if isinstance(value, bool) else str(value)

        try:
            res = await self._client.post(self.base_url, data=form)
            res.raise_for_status()
            payload = res.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("API %s failed with HTTP %s", action, exc.response.status_code)
            return ApiResult.failure(ErrorKind.NETWORK, f"HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            logger.warning("API %s request error: %s", action, exc)
            return ApiResult.failure(ErrorKind.NETWORK, str(exc) or exc.__class__.__name__)
        except ValueError:
            logger.warning("API %s returned a non-JSON body", action)
            return ApiResult.failure(ErrorKind.NETWORK, "Respons bukan JSON")

        result = decode_envelope(payload)
        if not result.ok:
            logger.info("API %s rejected: %s", action, result.error)
        return result

    # ── Classes & students ──────────────────────────────────────────

    async def get_classes(self) -> ApiResult:
        return await self.request("getClasses")

    async def get_students(self) -> ApiResult:
        return await self.request("getStudentsFromSheet")

    async def get_students_by_class(self, class_id: str) -> ApiResult:
        return await self.request("getStudentsByClass", classId=class_id)

    # ── Assignments ─────────────────────────────────────────────────

    async def get_assignments(self, class_id: Optional[str] = None) -> ApiResult:
        if class_id and class_id != "all":
            return await self.request("getAssignmentsByClass", classId=class_id)
        return await self.request("getAssignments")

    async def create_assignment(self, class_id: str, title: str, description: str,
                                due_date: str, max_points: float = 100) -> ApiResult:
        return await self.request("createAssignment", classId=class_id, title=title,
                                  description=description, dueDate=due_date, maxPoints=max_points)

    async def update_assignment(self, assignment_id: str, title: str, description: str,
                                due_date: str, max_points: float = 100) -> ApiResult:
        return await self.request("updateAssignment", id=assignment_id, title=title,
                                  description=description, dueDate=due_date, maxPoints=max_points)

    async def update_assignment_status(self, assignment_id: str, status: str) -> ApiResult:
        return await self.request("updateAssignmentStatus", id=assignment_id, status=status)

    async def delete_assignment(self, assignment_id: str) -> ApiResult:
        return await self.request("deleteAssignment", id=assignment_id)

    async def get_assignment_grades(self, assignment_id: str) -> ApiResult:
        return await self.request("getAssignmentGrades", assignmentId=assignment_id)

    # ── Grades ──────────────────────────────────────────────────────

    async def get_grades(self) -> ApiResult:
        return await self.request("getGrades")

    async def create_grade(self, assignment_id: str, student_username: str,
                           points: float, feedback: str = "") -> ApiResult:
        return await self.request("createGrade", assignmentId=assignment_id,
                                  studentUsername=student_username, points=points, feedback=feedback)

    async def update_grade(self, grade_id: str, points: float, feedback: str = "") -> ApiResult:
        return await self.request("updateGrade", id=grade_id, points=points, feedback=feedback)

    async def delete_grade(self, grade_id: str) -> ApiResult:
        return await self.request("deleteGrade", id=grade_id)

    # ── Badges, levels, challenges ──────────────────────────────────

    async def get_badges(self) -> ApiResult:
        return await self.request("getBadges")

    async def save_badge(self, name: str, description: str, icon: str, category: str,
                         point_value: int, badge_id: Optional[str] = None) -> ApiResult:
        action = "updateBadge" if badge_id else "createBadge"
        return await self.request(action, id=badge_id, name=name, description=description,
                                  icon=icon, category=category, pointValue=point_value)

    async def delete_badge(self, badge_id: str) -> ApiResult:
        return await self.request("deleteBadge", id=badge_id)

    async def get_levels(self) -> ApiResult:
        return await self.request("getLevels")

    async def save_level(self, name: str, points_required: int, benefits: str = "",
                         color: Optional[str] = None, level_id: Optional[str] = None) -> ApiResult:
        action = "updateLevel" if level_id else "createLevel"
        return await self.request(action, id=level_id, name=name, pointsRequired=points_required,
                                  benefits=benefits, color=color)

    async def delete_level(self, level_id: str) -> ApiResult:
        return await self.request("deleteLevel", id=level_id)

    async def get_challenges(self) -> ApiResult:
        return await self.request("getChallenges")

    async def save_challenge(self, title: str, description: str, reward: int, deadline: str,
                             challenge_id: Optional[str] = None) -> ApiResult:
        action = "updateChallenge" if challenge_id else "createChallenge"
        return await self.request(action, id=challenge_id, title=title, description=description,
                                  reward=reward, deadline=deadline)

    async def toggle_challenge(self, challenge_id: str) -> ApiResult:
        return await self.request("toggleChallengeStatus", id=challenge_id)

    async def delete_challenge(self, challenge_id: str) -> ApiResult:
        return await self.request("deleteChallenge", id=challenge_id)

    # ── Gamification ────────────────────────────────────────────────

    async def get_gamification(self) -> ApiResult:
        return await self.request("getGamification")

    async def award_points(self, class_id: str, student_username: str,
                           points: int, reason: str = "") -> ApiResult:
        return await self.request("awardPoints", classId=class_id, studentUsername=student_username,
                                  points=points, reason=reason)

    async def award_badge(self, class_id: str, student_username: str,
                          badge_id: str, badge_name: str) -> ApiResult:
        return await self.request("awardBadge", classId=class_id, studentUsername=student_username,
                                  badgeId=badge_id, badgeName=badge_name)

    async def update_student_level(self, class_id: str, student_username: str, level: int) -> ApiResult:
        return await self.request("updateStudentLevel", classId=class_id,
                                  studentUsername=student_username, level=level)

    # ── Attendance ──────────────────────────────────────────────────

    async def get_attendance(self, class_id: str, date: str) -> ApiResult:
        return await self.request("getAttendance", classId=class_id, date=date)

    async def update_attendance(self, class_id: str, date: str, statuses: Dict[str, str]) -> ApiResult:
        return await self.request("updateAttendance", classId=class_id, date=date,
                                  attendance=json.dumps(statuses))

    async def get_all_attendance(self) -> ApiResult:
        return await self.request("getAllAttendance")
