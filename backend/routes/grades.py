"""
Grade routes — gradebook derivations and bulk grade actions.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from core.api_client import SheetApiClient
from core.assignments import check_auto_complete, pending_grades
from core.bulk import run_bulk
from core.errors import ValidationError
from core.grades import enrich_grades, filter_grades, grade_stats, validate_grade_points
from core.lookups import find_assignment
from core.rewards import bulk_delete
from core.schemas import Assignment, Grade, SchoolClass, Student, parse_list
from core.views import refresh_gradebook_view
from routes.deps import get_api_client, records_from_payload, unwrap

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/enrich")
async def enrich(payload: dict):
    """Grades with student name, percentage and status band."""
    grades = records_from_payload(payload, "grades", Grade, required=True)
    assignments = records_from_payload(payload, "assignments", Assignment)
    students = records_from_payload(payload, "students", Student)
    return {"grades": enrich_grades(grades, assignments, students)}


@router.post("/stats")
async def stats(payload: dict):
    """Summary stats for the filtered grade list."""
    grades = records_from_payload(payload, "grades", Grade, required=True)
    assignments = records_from_payload(payload, "assignments", Assignment)
    students = records_from_payload(payload, "students", Student)
    enriched = enrich_grades(grades, assignments, students)
    visible = filter_grades(
        enriched, assignments,
        class_id=payload.get("classId", "all"),
        assignment_id=payload.get("assignmentId", "all"),
        search=payload.get("search", ""),
    )
    return grade_stats(visible)


@router.post("/pending")
async def pending(payload: dict):
    """Students still waiting for a grade, per assignment."""
    assignments = records_from_payload(payload, "assignments", Assignment, required=True)
    students = records_from_payload(payload, "students", Student)
    grades = records_from_payload(payload, "grades", Grade)
    classes = records_from_payload(payload, "classes", SchoolClass)
    rows = pending_grades(
        assignments, students, grades, classes,
        class_id=payload.get("classId", "all"),
        assignment_id=payload.get("assignmentId", "all"),
    )
    return {"pending": rows, "count": len(rows)}


@router.post("/dashboard")
async def dashboard(payload: dict):
    """Full gradebook page state."""
    state = refresh_gradebook_view(
        records_from_payload(payload, "grades", Grade),
        records_from_payload(payload, "assignments", Assignment),
        records_from_payload(payload, "students", Student),
        records_from_payload(payload, "classes", SchoolClass),
        class_filter=payload.get("classId", "all"),
        assignment_filter=payload.get("assignmentId", "all"),
        search=payload.get("search", ""),
    )
    return state.as_dict()


@router.post("/bulk-create")
async def bulk_create(payload: dict, client: SheetApiClient = Depends(get_api_client)):
    """
    Save many grades for one assignment, then run the auto-complete check.

    Blank entries are skipped; any invalid score rejects the whole batch
    before a request is sent.
    """
    assignment_id = payload.get("assignmentId")
    if not assignment_id:
        raise HTTPException(422, "Pilih tugas terlebih dahulu")

    entries = [e for e in payload.get("grades") or [] if str(e.get("points", "")).strip() != ""]
    if not entries:
        raise HTTPException(422, "Masukkan minimal satu nilai")
    try:
        prepared = [(e["studentUsername"], validate_grade_points(e["points"]), e.get("feedback", ""))
                    for e in entries]
    except ValidationError as exc:
        raise HTTPException(422, exc.message)
    except KeyError:
        raise HTTPException(400, "Setiap nilai membutuhkan studentUsername")

    async def _create(entry):
        username, points, feedback = entry
        return await client.create_grade(assignment_id, username, points, feedback)

    result = await run_bulk(prepared, _create, describe=lambda e: e[0])

    completed_message = None
    if result.successful:
        assignments = parse_list(Assignment, unwrap(await client.get_assignments()).items("assignments"))
        assignment = find_assignment(assignment_id, assignments)
        if assignment is not None:
            completed_message = await check_auto_complete(client, assignment)

    body = result.as_dict()
    body["autoCompleted"] = completed_message
    return body


@router.post("/bulk-delete")
async def delete_many(payload: dict, client: SheetApiClient = Depends(get_api_client)):
    """Delete the selected grades; partial failure is reported, not rolled back."""
    try:
        result = await bulk_delete(client, "grade", payload.get("ids") or [])
    except ValidationError as exc:
        raise HTTPException(422, exc.message)
    return result.as_dict()
