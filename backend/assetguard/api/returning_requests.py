"""Returning request endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from assetguard.api.deps import require_operation
from assetguard.database import get_db
from assetguard.schemas.assignment import ReturningRequestListResponse, ReturningRequestResponse
from assetguard.services.assignment_coordinator import AssignmentCoordinator
from assetguard.utils.jwt_utils import Principal

router = APIRouter(prefix="/returning-requests", tags=["returning-requests"])


@router.get("", response_model=ReturningRequestListResponse)
def list_returning_requests(
    state: Optional[str] = Query(None, description="Filter by state: waiting_for_returning, completed, cancelled"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("list_returning_requests")),
):
    """List returning requests for assets in the admin's location"""
    items = AssignmentCoordinator(db).list_returning_requests(principal, state=state)
    return ReturningRequestListResponse(
        items=[ReturningRequestResponse.model_validate(r) for r in items],
        total=len(items),
    )


@router.post("/{request_id}/complete", response_model=ReturningRequestResponse)
def complete_return(
    request_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("complete_return")),
):
    """
    Complete a returning request (admin only).

    The request becomes completed and its assignment returned, together.
    """
    return AssignmentCoordinator(db).complete_return(principal, request_id)


@router.post("/{request_id}/cancel", response_model=ReturningRequestResponse)
def cancel_return(
    request_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("cancel_return")),
):
    """Cancel a returning request; the assignment stays accepted (admin only)"""
    return AssignmentCoordinator(db).cancel_return(principal, request_id)
