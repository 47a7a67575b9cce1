"""
Assignment routes — derived statuses, stats and the auto-complete check.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from core.api_client import SheetApiClient
from core.assignments import assignment_stats, check_auto_complete, with_statuses
from core.lookups import find_assignment
from core.schemas import Assignment, SchoolClass, parse_list
from core.views import refresh_assignment_board
from routes.deps import get_api_client, records_from_payload, unwrap

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/status")
async def statuses(payload: dict):
    """Each assignment with its display status (overdue derived from the due date)."""
    assignments = records_from_payload(payload, "assignments", Assignment, required=True)
    classes = records_from_payload(payload, "classes", SchoolClass)
    return {"assignments": with_statuses(assignments, classes)}


@router.post("/stats")
async def stats(payload: dict):
    assignments = records_from_payload(payload, "assignments", Assignment, required=True)
    return assignment_stats(assignments)


@router.post("/dashboard")
async def dashboard(payload: dict):
    """Assignment board: filtered, sorted, with stats."""
    state = refresh_assignment_board(
        records_from_payload(payload, "assignments", Assignment),
        records_from_payload(payload, "classes", SchoolClass),
        class_filter=payload.get("classId", "all"),
        sort_by=payload.get("sortBy", "dueDate"),
        descending=bool(payload.get("descending", False)),
    )
    return state.as_dict()


@router.post("/{assignment_id}/auto-complete")
async def auto_complete(assignment_id: str, client: SheetApiClient = Depends(get_api_client)):
    """Mark the assignment completed if every enrolled student has been graded."""
    assignments = parse_list(Assignment, unwrap(await client.get_assignments()).items("assignments"))
    assignment = find_assignment(assignment_id, assignments)
    if assignment is None:
        raise HTTPException(404, f"Assignment '{assignment_id}' not found.")

    message = await check_auto_complete(client, assignment)
    return {"completed": message is not None, "message": message}
