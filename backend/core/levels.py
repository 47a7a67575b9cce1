"""
levels.py — Point totals to levels.

Two sources of thresholds:
- the school-configured Level list (pointsRequired per tier), when present;
- the default XP curve otherwise (100, 300, 600, ... then +1000 per level).
"""

import math
from typing import Dict, List, Optional, Sequence

from core.schemas import Level


# Points needed to reach levels 2..11 on the default curve.
DEFAULT_THRESHOLDS = [100, 300, 600, 1000, 1500, 2100, 2800, 3600, 4500, 5500]
POINTS_PER_LEVEL_AFTER_CURVE = 1000


def calculate_level_from_points(points: int) -> int:
    """Level on the default XP curve."""
    for idx, threshold in enumerate(DEFAULT_THRESHOLDS):
        if points < threshold:
            return idx + 1
    return math.floor(10 + (points - DEFAULT_THRESHOLDS[-1]) / POINTS_PER_LEVEL_AFTER_CURVE)


def level_threshold(level: int) -> int:
    """Points at which `level` starts on the default curve."""
    if level <= 1:
        return 0
    if level <= len(DEFAULT_THRESHOLDS) + 1:
        return DEFAULT_THRESHOLDS[level - 2]
    return DEFAULT_THRESHOLDS[-1] + (level - 11) * POINTS_PER_LEVEL_AFTER_CURVE


def xp_to_next_level(points: int) -> Dict[str, float]:
    """Progress inside the current level on the default curve."""
    current = calculate_level_from_points(points)
    current_floor = level_threshold(current)
    next_floor = level_threshold(current + 1)

    progress_xp = points - current_floor
    required_xp = next_floor - current_floor
    progress = (progress_xp / required_xp) * 100 if required_xp > 0 else 100.0

    return {
        "current_level_xp": progress_xp,
        "next_level_xp": required_xp,
        "progress": min(max(progress, 0.0), 100.0),
    }


def sort_levels(levels: Sequence[Level]) -> List[Level]:
    return sorted(levels, key=lambda lv: lv.points_required)


def resolve_level(total_points: float, levels: Sequence[Level]) -> Level:
    """
    Highest tier whose pointsRequired <= total_points.

    Falls back to the lowest-defined tier when none qualifies. The list may
    arrive in any order.
    """
    if not levels:
        raise ValueError("resolve_level needs at least one level")

    ordered = sort_levels(levels)
    qualifying = [lv for lv in ordered if lv.points_required <= total_points]
    if not qualifying:
        return ordered[0]
    return qualifying[-1]


def level_number(total_points: float, levels: Optional[Sequence[Level]] = None) -> int:
    """1-based level for a point total; default curve when no tiers are defined."""
    if not levels:
        return calculate_level_from_points(int(total_points))

    ordered = sort_levels(levels)
    resolved = resolve_level(total_points, ordered)
    return next(idx for idx, lv in enumerate(ordered) if lv is resolved) + 1


def should_level_up(new_total: float, stored_level: int,
                    levels: Optional[Sequence[Level]] = None) -> Optional[int]:
    """New level when an award pushes the total past the stored level, else None."""
    new_level = level_number(new_total, levels)
    return new_level if new_level > stored_level else None
