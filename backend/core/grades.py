"""
grades.py — Gradebook derivations.

Computes:
- Enriched grades (student name, max points, whole percentage, status band)
- Summary stats (average/high/low, band counts, pass rate)
- Class/assignment/search filtering
"""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from core.errors import ValidationError
from core.grading import classify, is_passing, percentage, round_half_up
from core.lookups import find_assignment, student_name
from core.schemas import Assignment, Grade, Student


def _safe_float(val) -> Optional[float]:
    """Convert to float or return None."""
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


def _number(value: float):
    """85.0 -> 85, 85.5 stays."""
    return int(value) if float(value).is_integer() else value


def enrich_grades(
    grades: Sequence[Grade],
    assignments: Sequence[Assignment],
    students: Sequence[Student],
) -> List[Dict[str, Any]]:
    """Grades with studentName, maxPoints, percentage and status filled in."""
    enriched = []
    for grade in grades:
        assignment = find_assignment(grade.assignment_id, assignments)
        max_points = assignment.max_points if assignment else 100.0

        enriched.append(
            {
                "id": grade.id,
                "assignmentId": grade.assignment_id,
                "studentUsername": grade.student_username,
                "studentName": grade.student_name or student_name(grade.student_username, students),
                "points": _number(grade.points),
                "feedback": grade.feedback,
                "gradedAt": grade.graded_at,
                "maxPoints": _number(max_points),
                "percentage": percentage(grade.points, max_points),
                "status": classify(grade.points, max_points),
            }
        )
    return enriched


def grade_stats(enriched: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Summary over enriched grades; all zeros for an empty list."""
    df = pd.DataFrame(list(enriched), columns=["points", "percentage", "status"])
    total = int(len(df))
    if total == 0:
        return {
            "total": 0, "averageScore": 0, "highestScore": 0, "lowestScore": 0,
            "excellentCount": 0, "goodCount": 0, "fairCount": 0, "poorCount": 0,
            "averagePercentage": 0, "passRate": 0,
        }

    points = pd.to_numeric(df["points"], errors="coerce").fillna(0)
    pcts = pd.to_numeric(df["percentage"], errors="coerce").fillna(0)
    bands = df["status"].value_counts()
    passing = int(df["status"].map(is_passing).sum())

    return {
        "total": total,
        "averageScore": _safe_float(points.mean()) or 0,
        "highestScore": _number(float(points.max())),
        "lowestScore": _number(float(points.min())),
        "excellentCount": int(bands.get("excellent", 0)),
        "goodCount": int(bands.get("good", 0)),
        "fairCount": int(bands.get("fair", 0)),
        "poorCount": int(bands.get("poor", 0)),
        "averagePercentage": round_half_up(float(pcts.mean())),
        "passRate": round_half_up(passing / total * 100),
    }


def filter_grades(
    enriched: Sequence[Dict[str, Any]],
    assignments: Sequence[Assignment],
    class_id: str = "all",
    assignment_id: str = "all",
    search: str = "",
) -> List[Dict[str, Any]]:
    """Narrow enriched grades by class (via the assignment), assignment, and name search."""
    needle = search.strip().lower()
    out = []
    for g in enriched:
        if assignment_id != "all" and g["assignmentId"] != assignment_id:
            continue
        if class_id != "all":
            assignment = find_assignment(g["assignmentId"], assignments)
            if assignment is None or assignment.class_id != class_id:
                continue
        if needle and needle not in g["studentName"].lower() and needle not in g["studentUsername"].lower():
            continue
        out.append(g)
    return out


def validate_grade_points(value: Any) -> float:
    """Parse a typed-in score; must be a number between 0 and 100."""
    try:
        points = float(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Nilai harus berupa angka antara 0-100", field="points")
    if np.isnan(points) or points < 0 or points > 100:
        raise ValidationError("Nilai harus berupa angka antara 0-100", field="points")
    return points
