"""
grading.py — Grade status bands.

A raw score and its maximum map to one of four qualitative bands:
  excellent (>= 85%), good (>= 70%), fair (>= 60%), poor (< 60%)

excellent, good and fair count towards the pass rate.
"""

import math
from typing import Any, Dict, List, Optional


# Status bands (min_percentage, status, label), ordered high to low.
STATUS_BANDS = [
    (85.0, "excellent", "Sangat Baik"),
    (70.0, "good", "Baik"),
    (60.0, "fair", "Cukup"),
    (0.0, "poor", "Perlu Perbaikan"),
]

# Higher is better; used for sorting and monotonicity checks.
STATUS_ORDER = {"poor": 0, "fair": 1, "good": 2, "excellent": 3}
PASSING_STATUSES = {"excellent", "good", "fair"}


def _to_float(value: Any) -> Optional[float]:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(v) or math.isinf(v) else v


def raw_percentage(points: Any, max_points: Any = 100) -> float:
    """Unrounded percentage; 0.0 when the maximum is missing or not positive."""
    p = _to_float(points)
    m = _to_float(max_points)
    if p is None or m is None or m <= 0:
        return 0.0
    return p / m * 100


def percentage(points: Any, max_points: Any = 100) -> int:
    """Whole-number percentage, halves rounded up."""
    return round_half_up(raw_percentage(points, max_points))


def round_half_up(value: float) -> int:
    """Round like the dashboard does (2.5 -> 3, not banker's 2)."""
    return int(math.floor(value + 0.5))


def classify(points: Any, max_points: Any = 100) -> str:
    """Return the status band for a score; 'poor' when it cannot be computed."""
    m = _to_float(max_points)
    if m is None or m <= 0 or _to_float(points) is None:
        return "poor"

    value = raw_percentage(points, m)
    for min_pct, status, _label in STATUS_BANDS:
        if value >= min_pct:
            return status
    return "poor"


def status_label(status: str) -> str:
    """Indonesian display label for a status band."""
    for _min_pct, band, label in STATUS_BANDS:
        if band == status:
            return label
    return "N/A"


def is_passing(status: str) -> bool:
    return status in PASSING_STATUSES


def get_all_status_thresholds() -> List[Dict[str, Any]]:
    """Full band scale for legends."""
    thresholds = []
    for idx, (min_pct, status, label) in enumerate(STATUS_BANDS):
        max_pct = 100.0 if idx == 0 else STATUS_BANDS[idx - 1][0] - 0.01
        thresholds.append(
            {
                "min": min_pct,
                "max": round(max_pct, 2),
                "status": status,
                "label": label,
                "passing": is_passing(status),
            }
        )
    return thresholds
