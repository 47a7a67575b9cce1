"""
Gamification routes — student views, leaderboard, levels and awards.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from core.api_client import SheetApiClient
from core.bulk import BulkFailure, BulkResult
from core.errors import ValidationError
from core.gamification import (
    badge_recipients, current_user_stats, leaderboard as rank_students, level_distribution,
    filter_views, reconcile,
)
from core.levels import level_number, resolve_level, xp_to_next_level
from core.rewards import award_badge, award_points
from core.schemas import (
    Badge, GamificationRecord, Level, SchoolClass, Student, dump, parse_list,
)
from core.views import refresh_gamification_view
from routes.deps import get_api_client, records_from_payload, unwrap

router = APIRouter()
logger = logging.getLogger(__name__)

STUDENT_NOT_FOUND = "Siswa tidak ditemukan"


@router.post("/reconcile")
async def reconcile_students(payload: dict):
    """One view per roster student, merged with its gamification record."""
    students = records_from_payload(payload, "students", Student, required=True)
    records = records_from_payload(payload, "records", GamificationRecord)
    classes = records_from_payload(payload, "classes", SchoolClass)

    views = reconcile(students, records, classes)
    visible = filter_views(views, payload.get("classId", "all"), payload.get("level", "all"))
    return {
        "students": dump(visible),
        "levelDistribution": level_distribution(views),
    }


@router.post("/leaderboard")
async def leaderboard(payload: dict):
    """Ranking by points, global or for one class."""
    records = records_from_payload(payload, "records", GamificationRecord, required=True)
    students = records_from_payload(payload, "students", Student)
    levels = records_from_payload(payload, "levels", Level)
    entries = rank_students(records, students, levels, class_id=payload.get("classId"))
    return {"leaderboard": entries}


@router.post("/user-stats")
async def user_stats(payload: dict):
    username = payload.get("username")
    if not username:
        raise HTTPException(400, "No 'username' provided.")
    records = records_from_payload(payload, "records", GamificationRecord)
    levels = records_from_payload(payload, "levels", Level)
    return current_user_stats(records, username, levels)


@router.post("/recipients")
async def recipients(payload: dict):
    """Recipient counts for each badge."""
    badges = records_from_payload(payload, "badges", Badge, required=True)
    students = records_from_payload(payload, "students", Student)
    records = records_from_payload(payload, "records", GamificationRecord)
    return {"badges": badge_recipients(badges, reconcile(students, records))}


@router.post("/resolve-level")
async def resolve(payload: dict):
    """Level for a point total, against the configured tiers when given."""
    try:
        points = float(payload.get("points", 0) or 0)
    except (TypeError, ValueError):
        raise HTTPException(400, "'points' must be a number.")

    levels = records_from_payload(payload, "levels", Level)
    body = {
        "levelNumber": level_number(points, levels),
        "progress": xp_to_next_level(int(points)),
        "level": None,
    }
    if levels:
        body["level"] = dump(resolve_level(points, levels))
    return body


@router.post("/dashboard")
async def dashboard(payload: dict):
    """Full gamification page state."""
    state = refresh_gamification_view(
        records_from_payload(payload, "students", Student),
        records_from_payload(payload, "records", GamificationRecord),
        records_from_payload(payload, "badges", Badge),
        records_from_payload(payload, "levels", Level),
        records_from_payload(payload, "classes", SchoolClass),
        class_filter=payload.get("classId", "all"),
        level_filter=payload.get("level", "all"),
    )
    return state.as_dict()


async def _load_selection(client: SheetApiClient, student_ids):
    """Fetch roster, records and levels, and pick the selected student views."""
    if not student_ids:
        raise HTTPException(422, "Pilih minimal satu siswa")

    students_res, records_res, levels_res = await asyncio.gather(
        client.get_students(), client.get_gamification(), client.get_levels(),
    )
    students = parse_list(Student, unwrap(students_res).items("students"))
    records = parse_list(GamificationRecord, unwrap(records_res).items("data"))
    # Levels are optional: without them the default XP curve applies.
    levels = parse_list(Level, levels_res.items("levels")) if levels_res.ok else []

    views = {v.id: v for v in reconcile(students, records)}
    selected = [views[sid] for sid in dict.fromkeys(student_ids) if sid in views]
    missing = [sid for sid in dict.fromkeys(student_ids) if sid not in views]
    if not selected:
        raise HTTPException(422, "Siswa yang dipilih tidak ditemukan")
    if missing:
        logger.warning("Selected students not on the roster: %s", ", ".join(map(str, missing)))
    return selected, missing, levels


def _with_missing(result: BulkResult, missing) -> dict:
    for sid in missing:
        result.failed.append(BulkFailure(sid, STUDENT_NOT_FOUND))
    return result.as_dict()


@router.post("/award-points")
async def give_points(payload: dict, client: SheetApiClient = Depends(get_api_client)):
    """Award points to the selected students (view ids)."""
    try:
        points = int(payload.get("points") or 0)
    except (TypeError, ValueError):
        raise HTTPException(422, "Jumlah poin harus lebih dari 0")

    selected, missing, levels = await _load_selection(client, payload.get("studentIds") or [])
    try:
        result = await award_points(client, selected, points, payload.get("reason", ""), levels)
    except ValidationError as exc:
        raise HTTPException(422, exc.message)
    return _with_missing(result, missing)


@router.post("/award-badge")
async def give_badge(payload: dict, client: SheetApiClient = Depends(get_api_client)):
    """Award one badge to the selected students (view ids)."""
    badge_id = payload.get("badgeId")
    if not badge_id:
        raise HTTPException(422, "Pilih badge terlebih dahulu")

    badges = parse_list(Badge, unwrap(await client.get_badges()).items("badges"))
    badge = next((b for b in badges if b.id == badge_id), None)

    selected, missing, levels = await _load_selection(client, payload.get("studentIds") or [])
    try:
        result = await award_badge(client, selected, badge, levels)
    except ValidationError as exc:
        raise HTTPException(422, exc.message)
    return _with_missing(result, missing)
