"""
lookups.py — Foreign-key lookups that never raise.

A dangling classId/assignmentId/username resolves to a readable label so a
table or export can still be rendered.
"""

from typing import Optional, Sequence

from core.schemas import Assignment, Grade, SchoolClass, Student

CLASS_NOT_FOUND = "Kelas tidak ditemukan"
ASSIGNMENT_NOT_FOUND = "Tugas tidak ditemukan"


def class_name(class_id: str, classes: Sequence[SchoolClass]) -> str:
    if not class_id:
        return "ID kelas tidak valid"
    if not classes:
        return "Data kelas tidak tersedia"
    cls = next((c for c in classes if c.id == class_id), None)
    if cls is None:
        return CLASS_NOT_FOUND
    return cls.name or "Nama kelas tidak tersedia"


def assignment_title(assignment_id: str, assignments: Sequence[Assignment]) -> str:
    assignment = find_assignment(assignment_id, assignments)
    return assignment.title if assignment else ASSIGNMENT_NOT_FOUND


def find_assignment(assignment_id: str, assignments: Sequence[Assignment]) -> Optional[Assignment]:
    return next((a for a in assignments if a.id == assignment_id), None)


def find_student(username: str, students: Sequence[Student]) -> Optional[Student]:
    return next((s for s in students if s.username == username), None)


def student_name(username: str, students: Sequence[Student]) -> str:
    student = find_student(username, students)
    return (student.full_name if student else "") or username


def assignment_class_name(assignment_id: str, assignments: Sequence[Assignment],
                          classes: Sequence[SchoolClass]) -> str:
    assignment = find_assignment(assignment_id, assignments)
    if assignment is None:
        return CLASS_NOT_FOUND
    return class_name(assignment.class_id, classes)


def student_class_name(
    username: str,
    students: Sequence[Student],
    classes: Sequence[SchoolClass],
    assignments: Sequence[Assignment] = (),
    grades: Sequence[Grade] = (),
    assignment_id: Optional[str] = None,
) -> str:
    """
    Class label for a student, trying in order: the roster, the given
    assignment's class, then the class of any assignment the student was
    graded on.
    """
    if not username:
        return "Username tidak valid"

    student = find_student(username, students)
    if student and student.class_id:
        name = class_name(student.class_id, classes)
        if name != CLASS_NOT_FOUND:
            return name

    if assignment_id:
        name = assignment_class_name(assignment_id, assignments, classes)
        if name != CLASS_NOT_FOUND:
            return name

    graded = next((g for g in grades if g.student_username == username), None)
    if graded and graded.assignment_id:
        name = assignment_class_name(graded.assignment_id, assignments, classes)
        if name != CLASS_NOT_FOUND:
            return name

    if student and student.class_id:
        return f"Kelas ID: {student.class_id}"
    return CLASS_NOT_FOUND
