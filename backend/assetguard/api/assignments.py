"""Assignment endpoints"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from assetguard.api.deps import require_operation
from assetguard.database import get_db
from assetguard.schemas.assignment import (
    AssignmentCreate,
    AssignmentListResponse,
    AssignmentResponse,
    AssignmentUpdate,
    ReturningRequestResponse,
)
from assetguard.services.assignment_coordinator import AssignmentCoordinator
from assetguard.utils.jwt_utils import Principal

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_assignment(
    body: AssignmentCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("create_assignment")),
):
    """
    Assign an asset to a user (admin only).

    The asset must be available and in the admin's location; the assigned
    date must fall between today and one year from today.
    """
    return AssignmentCoordinator(db).create_assignment(
        principal,
        asset_id=body.asset_id,
        assignee_id=body.assignee_id,
        assigned_date=body.assigned_date,
        note=body.note,
    )


# Declared before /{assignment_id} so "mine" is not parsed as an id
@router.get("/mine", response_model=AssignmentListResponse)
def list_my_assignments(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("list_my_assignments")),
):
    """The caller's own assignments that are still waiting or accepted"""
    items = AssignmentCoordinator(db).list_my_assignments(principal)
    return AssignmentListResponse(
        items=[AssignmentResponse.model_validate(a) for a in items],
        total=len(items),
    )


@router.get("/{assignment_id}", response_model=AssignmentResponse)
def get_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("get_assignment")),
):
    """Get one assignment. Staff can only see their own."""
    return AssignmentCoordinator(db).get_assignment(principal, assignment_id)


@router.patch("/{assignment_id}", response_model=AssignmentResponse)
def update_assignment(
    assignment_id: int,
    body: AssignmentUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("update_assignment")),
):
    """
    Edit an assignment that is still waiting for acceptance (admin only).

    A different asset must be available in the admin's location; the
    assigned date cannot move earlier than it currently is.
    """
    return AssignmentCoordinator(db).update_assignment(
        principal,
        assignment_id,
        asset_id=body.asset_id,
        assignee_id=body.assignee_id,
        assigned_date=body.assigned_date,
        note=body.note,
    )


@router.post("/{assignment_id}/accept", response_model=AssignmentResponse)
def accept_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("accept_assignment")),
):
    """Accept an assignment waiting for acceptance (assignee only)"""
    return AssignmentCoordinator(db).accept_assignment(principal, assignment_id)


@router.post("/{assignment_id}/decline", response_model=AssignmentResponse)
def decline_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("decline_assignment")),
):
    """Decline an assignment waiting for acceptance (assignee only)"""
    return AssignmentCoordinator(db).decline_assignment(principal, assignment_id)


@router.post(
    "/{assignment_id}/returning-request",
    response_model=ReturningRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_return(
    assignment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("request_return")),
):
    """
    Ask to return an accepted asset (assignee only).

    Only one returning request may be open per assignment; a second one is
    rejected with 409.
    """
    return AssignmentCoordinator(db).request_return(principal, assignment_id)


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("delete_assignment")),
):
    """Delete an assignment that is waiting for acceptance or was declined (admin only)"""
    AssignmentCoordinator(db).delete_assignment(principal, assignment_id)
