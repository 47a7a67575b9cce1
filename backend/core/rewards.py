"""
rewards.py — Awarding points and badges to selected students.

Each award is a separate request. When the API reports the new point total,
the level is re-resolved and a level-up is written if it beats the stored
level. The level-up write is best effort: a failure there is logged and the
award itself still counts as successful.
"""

import logging
from typing import Optional, Sequence

from core.api_client import ApiResult, SheetApiClient
from core.bulk import BulkResult, run_bulk
from core.errors import ValidationError
from core.gamification import badge_key
from core.levels import should_level_up
from core.schemas import Badge, Level, StudentView

logger = logging.getLogger(__name__)

DELETABLE_ENTITIES = {"grade", "assignment", "badge", "level", "challenge"}


async def _apply_level_up(client: SheetApiClient, student: StudentView, result: ApiResult,
                          levels: Optional[Sequence[Level]]) -> None:
    new_total = result.data.get("newTotal")
    if not new_total:
        return
    try:
        new_total = float(new_total)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric newTotal %r for %s", new_total, student.username)
        return

    new_level = should_level_up(new_total, student.level, levels)
    if new_level is None:
        return

    res = await client.update_student_level(student.class_id, student.username, new_level)
    if res.ok:
        logger.info("Level up: %s %s -> %s", student.username, student.level, new_level)
    else:
        logger.warning("Level update failed for %s: %s", student.username, res.error)


def _require_students(students: Sequence[StudentView]) -> None:
    if not students:
        raise ValidationError("Pilih minimal satu siswa", field="students")


async def award_points(
    client: SheetApiClient,
    students: Sequence[StudentView],
    points: int,
    reason: str = "",
    levels: Optional[Sequence[Level]] = None,
    concurrency: Optional[int] = None,
) -> BulkResult:
    """Give `points` to every selected student."""
    _require_students(students)
    if points is None or points <= 0:
        raise ValidationError("Jumlah poin harus lebih dari 0", field="points")

    async def _award(student: StudentView) -> ApiResult:
        res = await client.award_points(student.class_id, student.username, points, reason)
        if res.ok:
            await _apply_level_up(client, student, res, levels)
        return res

    return await run_bulk(students, _award, concurrency, describe=lambda s: s.username)


async def award_badge(
    client: SheetApiClient,
    students: Sequence[StudentView],
    badge: Optional[Badge],
    levels: Optional[Sequence[Level]] = None,
    concurrency: Optional[int] = None,
) -> BulkResult:
    """Give `badge` to every selected student."""
    if badge is None:
        raise ValidationError("Badge tidak ditemukan", field="badge")
    _require_students(students)

    async def _award(student: StudentView) -> ApiResult:
        res = await client.award_badge(student.class_id, student.username, badge.id, badge_key(badge))
        if res.ok:
            await _apply_level_up(client, student, res, levels)
        return res

    return await run_bulk(students, _award, concurrency, describe=lambda s: s.username)


async def bulk_delete(
    client: SheetApiClient,
    entity: str,
    ids: Sequence[str],
    concurrency: Optional[int] = None,
) -> BulkResult:
    """Delete many records of one entity type."""
    if entity not in DELETABLE_ENTITIES:
        raise ValidationError(f"Jenis data tidak dikenal: {entity}", field="entity")
    if not ids:
        raise ValidationError("Tidak ada data yang dipilih", field="ids")

    delete = getattr(client, f"delete_{entity}")
    return await run_bulk(list(ids), delete, concurrency)
