"""
schemas.py — Pydantic models for the records served by the spreadsheet API.

Field names follow the API's camelCase via aliases; Python code uses
snake_case. Spreadsheet cells are loosely typed, so every model coerces at
the boundary: numeric ids become strings, blank or garbled numbers become 0,
comma-separated cells become lists, and timestamps are cut to their date
where a calendar date is expected.
"""

from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


ATTENDANCE_STATUSES = ("present", "sick", "permission", "absent")


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _as_int(value: Any) -> int:
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0


def _as_name_list(value: Any) -> List[str]:
    """Accept 'A, B' cells as well as real lists; drop blanks."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else list(value)
    return [str(p).strip() for p in parts if str(p).strip()]


def _as_iso_date(value: Any) -> str:
    """'2024-01-10T00:00:00.000Z' -> '2024-01-10'."""
    text = _as_str(value)
    return text[:10] if len(text) >= 10 and text[4] == "-" else text


def _as_attendance_status(value: Any) -> str:
    text = _as_str(value).lower()
    return text if text in ATTENDANCE_STATUSES else "absent"


def _as_level(value: Any) -> int:
    return _as_int(value) or 1


def _as_max_points(value: Any) -> float:
    if value is None or _as_str(value) == "":
        return 100.0
    return _as_float(value)


LooseStr = Annotated[str, BeforeValidator(_as_str)]
LooseInt = Annotated[int, BeforeValidator(_as_int)]
LooseFloat = Annotated[float, BeforeValidator(_as_float)]
NameList = Annotated[List[str], BeforeValidator(_as_name_list)]
IsoDate = Annotated[str, BeforeValidator(_as_iso_date)]
AttendanceStatus = Annotated[str, BeforeValidator(_as_attendance_status)]
LevelNumber = Annotated[int, BeforeValidator(_as_level)]
MaxPoints = Annotated[float, BeforeValidator(_as_max_points)]


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SchoolClass(_Record):
    id: LooseStr
    name: LooseStr = ""


class Student(_Record):
    id: LooseStr = ""
    username: LooseStr
    full_name: LooseStr = Field("", alias="fullName")
    class_id: LooseStr = Field("", alias="classId")
    class_name: LooseStr = Field("", alias="class")


class GamificationRecord(_Record):
    class_id: LooseStr = Field("", alias="classId")
    student_username: LooseStr = Field(..., alias="studentUsername")
    points: LooseInt = 0
    level: LevelNumber = 1
    badges: NameList = Field(default_factory=list)
    achievements: NameList = Field(default_factory=list)
    updated_at: LooseStr = Field("", alias="updatedAt")


class StudentView(_Record):
    """One per roster student, merged with its gamification record."""

    id: str
    name: str
    username: str
    class_name: str = Field("Unknown Class", alias="class")
    class_id: str = Field("", alias="classId")
    points: int = 0
    level: int = 1
    badges: int = 0
    achievements: List[str] = Field(default_factory=list)


class Badge(_Record):
    id: LooseStr
    name: LooseStr
    description: LooseStr = ""
    icon: LooseStr = ""
    category: LooseStr = ""
    point_value: LooseInt = Field(0, alias="pointValue")
    is_active: bool = Field(True, alias="isActive")
    awarded_count: LooseInt = Field(0, alias="awardedCount")


class Level(_Record):
    id: LooseStr
    name: LooseStr = ""
    points_required: LooseInt = Field(0, alias="pointsRequired")
    benefits: LooseStr = ""
    color: Optional[str] = None


class Challenge(_Record):
    id: LooseStr
    title: LooseStr = ""
    description: LooseStr = ""
    reward: LooseInt = 0
    deadline: LooseStr = ""
    participants: LooseInt = 0
    completions: LooseInt = 0
    is_active: bool = Field(True, alias="isActive")


class AttendanceRecord(_Record):
    id: LooseStr = ""
    class_id: LooseStr = Field("", alias="classId")
    date: IsoDate
    student_username: LooseStr = Field(..., alias="studentUsername")
    status: AttendanceStatus = "absent"
    notes: LooseStr = ""


class Assignment(_Record):
    id: LooseStr
    class_id: LooseStr = Field("", alias="classId")
    title: LooseStr = ""
    description: LooseStr = ""
    due_date: LooseStr = Field("", alias="dueDate")
    max_points: MaxPoints = Field(100.0, alias="maxPoints")
    status: Optional[str] = None
    created_at: LooseStr = Field("", alias="createdAt")


class Grade(_Record):
    id: LooseStr = ""
    assignment_id: LooseStr = Field(..., alias="assignmentId")
    student_username: LooseStr = Field(..., alias="studentUsername")
    student_name: LooseStr = Field("", alias="studentName")
    points: LooseFloat = 0.0
    feedback: LooseStr = ""
    graded_at: LooseStr = Field("", alias="gradedAt")


def parse_list(model, rows: Optional[List[Any]]) -> list:
    """Validate a list of raw dicts (or already-built models) into `model`."""
    return [row if isinstance(row, model) else model.model_validate(row) for row in rows or []]


def dump(obj) -> Any:
    """Serialise models (or lists of them) with the API's camelCase keys."""
    if isinstance(obj, list):
        return [dump(o) for o in obj]
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True)
    return obj
