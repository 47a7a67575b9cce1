"""
gamification.py — Roster + sparse gamification records -> student views.

Computes:
- One StudentView per roster student (defaults when no record exists)
- Badge recipients (matched by badge name)
- Global and per-class leaderboards
- A single user's points/level/badges/rank
"""

import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.levels import level_number
from core.schemas import Badge, GamificationRecord, Level, SchoolClass, Student, StudentView

logger = logging.getLogger(__name__)


def badge_key(badge: Badge) -> str:
    """
    Key stored in a student's achievements for this badge.

    Recipients are matched by display name, not id, so renaming a badge
    orphans earlier awards. Every lookup goes through here so the keying
    can change in one place.
    """
    return badge.name


def view_id(class_id: str, username: str) -> str:
    return f"{class_id or 'no-class'}-{username}"


def effective_level(points: int, stored_level: int, levels: Optional[Sequence[Level]] = None) -> int:
    """Stored level wins when higher than the one resolved from points (manual overrides)."""
    return max(level_number(points, levels), stored_level or 1)


def _record_index(records: Iterable[GamificationRecord]) -> Dict[tuple, GamificationRecord]:
    index: Dict[tuple, GamificationRecord] = {}
    for rec in records:
        # First record wins, like a find() over the sheet rows.
        index.setdefault((rec.class_id, rec.student_username), rec)
    return index


def reconcile(
    students: Sequence[Student],
    records: Sequence[GamificationRecord],
    classes: Optional[Sequence[SchoolClass]] = None,
) -> List[StudentView]:
    """Merge every roster student with its (classId, username) record."""
    index = _record_index(records)
    class_names = {c.id: c.name for c in classes or []}

    views: List[StudentView] = []
    for student in students:
        rec = index.get((student.class_id, student.username))
        class_label = student.class_name or class_names.get(student.class_id) or "Unknown Class"

        if rec is None:
            points, level, badge_names, achievements = 0, 1, [], []
        else:
            points, level = rec.points, rec.level
            badge_names, achievements = list(rec.badges), list(rec.achievements)

        views.append(
            StudentView(
                id=view_id(student.class_id, student.username),
                name=student.full_name or student.username,
                username=student.username,
                class_name=class_label,
                class_id=student.class_id,
                points=points,
                level=level,
                badges=len(badge_names),
                achievements=badge_names + achievements,
            )
        )

    dupes = [vid for vid, n in Counter(v.id for v in views).items() if n > 1]
    if dupes:
        logger.warning("Duplicate student view ids: %s", dupes)

    return views


def recipients_of(badge_name: str, views: Sequence[StudentView]) -> List[StudentView]:
    """Views whose achievements contain the badge name (exact, case-sensitive)."""
    return [v for v in views if badge_name in v.achievements]


def recipient_count(badge_name: str, views: Sequence[StudentView]) -> int:
    return len(recipients_of(badge_name, views))


def badge_recipients(badges: Sequence[Badge], views: Sequence[StudentView]) -> List[Dict[str, Any]]:
    return [
        {
            "badge_id": b.id,
            "badge_name": b.name,
            "recipient_count": recipient_count(badge_key(b), views),
            "recipients": [v.username for v in recipients_of(badge_key(b), views)],
        }
        for b in badges
    ]


def filter_views(views: Sequence[StudentView], class_id: str = "all", level: Any = "all") -> List[StudentView]:
    """Selection filter used before bulk awards."""
    out = []
    for v in views:
        if class_id != "all" and v.class_id != class_id:
            continue
        if str(level) != "all" and str(v.level) != str(level):
            continue
        out.append(v)
    return out


def level_distribution(views: Sequence[StudentView]) -> Dict[int, int]:
    return dict(sorted(Counter(v.level for v in views).items()))


def leaderboard(
    records: Sequence[GamificationRecord],
    students: Sequence[Student],
    levels: Optional[Sequence[Level]] = None,
    class_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Records ranked by points, highest first; optionally one class only."""
    names = {s.username: s.full_name for s in students}
    entries = []
    for rec in records:
        if not rec.student_username:
            continue
        if class_id and rec.class_id != class_id:
            continue
        entries.append(
            {
                "username": rec.student_username,
                "fullName": names.get(rec.student_username) or rec.student_username,
                "classId": rec.class_id,
                "points": rec.points,
                "level": effective_level(rec.points, rec.level, levels),
                "badges": len(rec.badges),
            }
        )
    # Stable sort keeps sheet order among ties.
    entries.sort(key=lambda e: e["points"], reverse=True)
    for rank, entry in enumerate(entries, 1):
        entry["rank"] = rank
    return entries


def current_user_stats(
    records: Sequence[GamificationRecord],
    username: str,
    levels: Optional[Sequence[Level]] = None,
) -> Dict[str, Any]:
    """Points, level, badges and global rank for one student."""
    mine = next((r for r in records if r.student_username == username), None)
    if mine is None:
        return {"points": 0, "level": 1, "badges": [], "rank": 0}

    ranked = sorted(records, key=lambda r: r.points, reverse=True)
    rank = next((i for i, r in enumerate(ranked, 1) if r.student_username == username), 0)

    return {
        "points": mine.points,
        "level": effective_level(mine.points, mine.level, levels),
        "badges": list(mine.badges),
        "rank": rank or len(ranked) + 1,
    }
