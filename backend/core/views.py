"""
views.py — Page state as plain dataclasses rebuilt by pure functions.

Each refresh_* takes freshly fetched collections plus the current filters
and returns a new state; nothing is updated in place.
"""

from dataclasses import asdict, dataclass, field
from datetime import date as Date, datetime
from typing import Any, Dict, List, Optional, Sequence

from core import assignments as assignment_rules
from core import attendance as attendance_rules
from core import gamification as gamification_rules
from core import grades as grade_rules
from core.schemas import (
    Assignment, AttendanceRecord, Badge, GamificationRecord, Grade, Level, SchoolClass, Student, dump,
)


@dataclass
class AttendanceViewState:
    selected_class: str = ""
    selected_date: str = ""
    stats: Dict[str, Any] = field(default_factory=dict)
    class_recaps: List[Dict[str, Any]] = field(default_factory=list)
    day_statuses: Dict[str, str] = field(default_factory=dict)
    day_completeness: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def refresh_attendance_view(
    records: Sequence[AttendanceRecord],
    classes: Sequence[SchoolClass],
    students: Sequence[Student],
    selected_class: str = "",
    selected_date: Optional[Date] = None,
) -> AttendanceViewState:
    day = (selected_date or Date.today()).isoformat()
    state = AttendanceViewState(
        selected_class=selected_class,
        selected_date=day,
        stats=attendance_rules.compute_global_stats(records),
        class_recaps=attendance_rules.compute_class_recaps(records, classes, students),
    )
    if selected_class:
        roster = [s for s in students if s.class_id == selected_class]
        day_records = [r for r in records if r.class_id == selected_class and r.date == day]
        state.day_statuses = attendance_rules.status_map(day_records)
        state.day_completeness = attendance_rules.get_class_attendance_status(
            records, selected_class, day, roster=roster
        )
    return state


@dataclass
class GradebookViewState:
    class_filter: str = "all"
    assignment_filter: str = "all"
    search: str = ""
    grades: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    pending: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def refresh_gradebook_view(
    grades: Sequence[Grade],
    assignments: Sequence[Assignment],
    students: Sequence[Student],
    classes: Sequence[SchoolClass],
    class_filter: str = "all",
    assignment_filter: str = "all",
    search: str = "",
) -> GradebookViewState:
    enriched = grade_rules.enrich_grades(grades, assignments, students)
    visible = grade_rules.filter_grades(enriched, assignments, class_filter, assignment_filter, search)
    return GradebookViewState(
        class_filter=class_filter,
        assignment_filter=assignment_filter,
        search=search,
        grades=visible,
        stats=grade_rules.grade_stats(visible),
        pending=assignment_rules.pending_grades(
            assignments, students, grades, classes, class_filter, assignment_filter
        ),
    )


@dataclass
class GamificationViewState:
    class_filter: str = "all"
    level_filter: str = "all"
    students: List[Dict[str, Any]] = field(default_factory=list)
    badges: List[Dict[str, Any]] = field(default_factory=list)
    leaderboard: List[Dict[str, Any]] = field(default_factory=list)
    level_distribution: Dict[int, int] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def refresh_gamification_view(
    students: Sequence[Student],
    records: Sequence[GamificationRecord],
    badges: Sequence[Badge],
    levels: Sequence[Level],
    classes: Sequence[SchoolClass] = (),
    class_filter: str = "all",
    level_filter: str = "all",
) -> GamificationViewState:
    views = gamification_rules.reconcile(students, records, classes)
    return GamificationViewState(
        class_filter=class_filter,
        level_filter=str(level_filter),
        students=dump(gamification_rules.filter_views(views, class_filter, level_filter)),
        badges=gamification_rules.badge_recipients(badges, views),
        leaderboard=gamification_rules.leaderboard(records, students, levels),
        level_distribution=gamification_rules.level_distribution(views),
    )


@dataclass
class AssignmentBoardState:
    class_filter: str = "all"
    sort_by: str = "dueDate"
    assignments: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def refresh_assignment_board(
    assignments: Sequence[Assignment],
    classes: Sequence[SchoolClass],
    class_filter: str = "all",
    sort_by: str = "dueDate",
    descending: bool = False,
    now: Optional[datetime] = None,
) -> AssignmentBoardState:
    if class_filter != "all":
        assignments = [a for a in assignments if a.class_id == class_filter]
    rows = assignment_rules.with_statuses(assignments, classes, now)
    return AssignmentBoardState(
        class_filter=class_filter,
        sort_by=sort_by,
        assignments=assignment_rules.sort_assignments(rows, sort_by, descending),
        stats=assignment_rules.assignment_stats(assignments, now),
    )
