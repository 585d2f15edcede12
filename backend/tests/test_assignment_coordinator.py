"""Tests for the assignment coordinator"""
import random
from datetime import date, timedelta

import pytest
from sqlalchemy.orm import Session

from assetguard.errors import (
    AssetGuardError,
    AssetUnavailable,
    ConflictingOpenRequest,
    Forbidden,
    InvalidRequest,
    InvalidTransition,
    NotFound,
)
from assetguard.models.asset import Asset
from assetguard.models.assignment import Assignment
from assetguard.models.enums import AssetState, AssignmentState, ReturningRequestState
from assetguard.models.returning_request import ReturningRequest
from assetguard.services.assignment_coordinator import AssignmentCoordinator, add_years
from assetguard.services.asset_service import AssetService

TODAY = date(2025, 3, 10)


@pytest.fixture
def coordinator(db: Session) -> AssignmentCoordinator:
    return AssignmentCoordinator(db)


@pytest.fixture
def as_admin(admin, principal_of):
    return principal_of(admin)


@pytest.fixture
def as_staff(staff, principal_of):
    return principal_of(staff)


def _assign(coordinator, as_admin, asset, staff, **kwargs):
    kwargs.setdefault("assigned_date", TODAY)
    kwargs.setdefault("today", TODAY)
    return coordinator.create_assignment(as_admin, asset_id=asset.id, assignee_id=staff.id, **kwargs)


def _accepted(coordinator, as_admin, as_staff, asset, staff):
    assignment = _assign(coordinator, as_admin, asset, staff)
    return coordinator.accept_assignment(as_staff, assignment.id)


# ---------------------------------------------------------------------------
# Full lifecycle
# ---------------------------------------------------------------------------

def test_assignment_lifecycle_end_to_end(coordinator, as_admin, as_staff, admin, asset, staff):
    """Create, accept, request return, complete; a second completion is refused"""
    assignment = _assign(coordinator, as_admin, asset, staff)
    assert assignment.state == AssignmentState.WAITING_FOR_ACCEPTANCE

    assignment = coordinator.accept_assignment(as_staff, assignment.id)
    assert assignment.state == AssignmentState.ACCEPTED

    request = coordinator.request_return(as_staff, assignment.id)
    assert request.state == ReturningRequestState.WAITING_FOR_RETURNING
    assert request.requested_by_user_id == staff.id

    request = coordinator.complete_return(as_admin, request.id, today=TODAY)
    assert request.state == ReturningRequestState.COMPLETED
    assert request.accepted_by_user_id == admin.id
    assert request.return_date == TODAY
    assert coordinator.get_assignment(as_admin, assignment.id).state == AssignmentState.RETURNED

    with pytest.raises(InvalidTransition):
        coordinator.complete_return(as_admin, request.id, today=TODAY)


def test_returned_asset_can_be_assigned_again(coordinator, as_admin, as_staff, asset, staff):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)
    request = coordinator.request_return(as_staff, assignment.id)
    coordinator.complete_return(as_admin, request.id)

    again = _assign(coordinator, as_admin, asset, staff)
    assert again.state == AssignmentState.WAITING_FOR_ACCEPTANCE


# ---------------------------------------------------------------------------
# create_assignment
# ---------------------------------------------------------------------------

def test_create_trims_note(coordinator, as_admin, asset, staff):
    assignment = _assign(coordinator, as_admin, asset, staff, note="  charger included  ")
    assert assignment.note == "charger included"


def test_create_rejects_asset_in_other_location(coordinator, remote_admin, principal_of, asset, staff):
    with pytest.raises(NotFound):
        _assign(coordinator, principal_of(remote_admin), asset, staff)


def test_create_rejects_unavailable_asset(coordinator, as_admin, make_asset, staff):
    asset = make_asset(state=AssetState.NOT_AVAILABLE)
    with pytest.raises(AssetUnavailable):
        _assign(coordinator, as_admin, asset, staff)


def test_create_rejects_already_assigned_asset(coordinator, as_admin, asset, staff, other_staff):
    _assign(coordinator, as_admin, asset, staff)
    with pytest.raises(AssetUnavailable):
        _assign(coordinator, as_admin, asset, other_staff)


def test_create_allows_asset_after_decline(coordinator, as_admin, as_staff, asset, staff, other_staff):
    assignment = _assign(coordinator, as_admin, asset, staff)
    coordinator.decline_assignment(as_staff, assignment.id)

    assert _assign(coordinator, as_admin, asset, other_staff).asset_id == asset.id


def test_create_rejects_inactive_assignee(coordinator, as_admin, asset, make_user):
    disabled = make_user("gone.hn", is_disabled=True)
    with pytest.raises(NotFound):
        _assign(coordinator, as_admin, asset, disabled)


@pytest.mark.parametrize(
    "assigned_date",
    [TODAY - timedelta(days=1), add_years(TODAY, 1) + timedelta(days=1)],
)
def test_create_rejects_date_outside_window(coordinator, as_admin, asset, staff, assigned_date):
    with pytest.raises(InvalidRequest):
        _assign(coordinator, as_admin, asset, staff, assigned_date=assigned_date)


def test_create_accepts_date_one_year_ahead(coordinator, as_admin, asset, staff):
    assignment = _assign(coordinator, as_admin, asset, staff, assigned_date=add_years(TODAY, 1))
    assert assignment.assigned_date == date(2026, 3, 10)


def test_add_years_leap_day():
    assert add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)
    assert add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)


# ---------------------------------------------------------------------------
# accept / decline
# ---------------------------------------------------------------------------

def test_only_assignee_may_accept(coordinator, as_admin, asset, staff, other_staff, principal_of):
    assignment = _assign(coordinator, as_admin, asset, staff)

    with pytest.raises(Forbidden):
        coordinator.accept_assignment(principal_of(other_staff), assignment.id)
    with pytest.raises(Forbidden):
        coordinator.decline_assignment(as_admin, assignment.id)


def test_accept_twice_is_invalid(coordinator, as_admin, as_staff, asset, staff):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)

    with pytest.raises(InvalidTransition):
        coordinator.accept_assignment(as_staff, assignment.id)


def test_declined_assignment_cannot_be_accepted(coordinator, as_admin, as_staff, asset, staff):
    assignment = _assign(coordinator, as_admin, asset, staff)
    coordinator.decline_assignment(as_staff, assignment.id)

    with pytest.raises(InvalidTransition):
        coordinator.accept_assignment(as_staff, assignment.id)


def test_missing_assignment_not_found(coordinator, as_staff):
    with pytest.raises(NotFound):
        coordinator.accept_assignment(as_staff, 9999)


# ---------------------------------------------------------------------------
# Returning requests
# ---------------------------------------------------------------------------

def test_second_open_request_rejected(coordinator, as_admin, as_staff, asset, staff):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)
    coordinator.request_return(as_staff, assignment.id)

    with pytest.raises(ConflictingOpenRequest):
        coordinator.request_return(as_staff, assignment.id)


def test_request_return_needs_accepted_assignment(coordinator, as_admin, as_staff, asset, staff):
    assignment = _assign(coordinator, as_admin, asset, staff)

    with pytest.raises(InvalidTransition):
        coordinator.request_return(as_staff, assignment.id)


def test_request_return_by_non_assignee_forbidden(coordinator, as_admin, as_staff, asset, staff,
                                                  other_staff, principal_of):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)

    with pytest.raises(Forbidden):
        coordinator.request_return(principal_of(other_staff), assignment.id)


def test_cancel_keeps_assignment_accepted(coordinator, as_admin, as_staff, asset, staff):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)
    request = coordinator.request_return(as_staff, assignment.id)

    request = coordinator.cancel_return(as_admin, request.id)

    assert request.state == ReturningRequestState.CANCELLED
    assert coordinator.get_assignment(as_admin, assignment.id).state == AssignmentState.ACCEPTED

    # A fresh request may be opened after cancelling
    assert coordinator.request_return(as_staff, assignment.id).state == ReturningRequestState.WAITING_FOR_RETURNING


def test_cancelled_request_cannot_be_completed(coordinator, as_admin, as_staff, asset, staff):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)
    request = coordinator.request_return(as_staff, assignment.id)
    coordinator.cancel_return(as_admin, request.id)

    with pytest.raises(InvalidTransition):
        coordinator.complete_return(as_admin, request.id)
    assert coordinator.get_assignment(as_admin, assignment.id).state == AssignmentState.ACCEPTED


def test_remote_admin_cannot_complete(coordinator, as_admin, as_staff, asset, staff, remote_admin, principal_of):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)
    request = coordinator.request_return(as_staff, assignment.id)

    with pytest.raises(NotFound):
        coordinator.complete_return(principal_of(remote_admin), request.id)


def test_list_returning_requests_scoped_and_filtered(coordinator, as_admin, as_staff, asset, make_asset, staff,
                                                     remote_admin, principal_of):
    first = _accepted(coordinator, as_admin, as_staff, asset, staff)
    second = _accepted(coordinator, as_admin, as_staff, make_asset(), staff)
    done = coordinator.request_return(as_staff, first.id)
    coordinator.complete_return(as_admin, done.id)
    coordinator.request_return(as_staff, second.id)

    assert len(coordinator.list_returning_requests(as_admin)) == 2
    waiting = coordinator.list_returning_requests(as_admin, state="waiting_for_returning")
    assert [r.assignment_id for r in waiting] == [second.id]
    assert coordinator.list_returning_requests(principal_of(remote_admin)) == []

    with pytest.raises(InvalidRequest):
        coordinator.list_returning_requests(as_admin, state="lost")


# ---------------------------------------------------------------------------
# update_assignment
# ---------------------------------------------------------------------------

def _update(coordinator, principal, assignment, asset, assignee, **kwargs):
    kwargs.setdefault("assigned_date", assignment.assigned_date)
    kwargs.setdefault("today", TODAY)
    return coordinator.update_assignment(
        principal, assignment.id, asset_id=asset.id, assignee_id=assignee.id, **kwargs
    )


def test_update_swaps_asset_and_assignee(coordinator, as_admin, asset, make_asset, staff, other_staff):
    assignment = _assign(coordinator, as_admin, asset, staff)
    replacement = make_asset()

    updated = _update(coordinator, as_admin, assignment, replacement, other_staff, note=" spare charger ")

    assert updated.asset_id == replacement.id
    assert updated.assigned_to_user_id == other_staff.id
    assert updated.note == "spare charger"
    assert updated.state == AssignmentState.WAITING_FOR_ACCEPTANCE
    # The first asset can be handed out again
    assert _assign(coordinator, as_admin, asset, staff).asset_id == asset.id


def test_update_answered_assignment_refused(coordinator, as_admin, as_staff, asset, staff):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)

    with pytest.raises(InvalidTransition):
        _update(coordinator, as_admin, assignment, asset, staff)


def test_update_from_other_location_not_found(coordinator, as_admin, asset, staff, remote_admin, principal_of):
    assignment = _assign(coordinator, as_admin, asset, staff)

    with pytest.raises(NotFound):
        _update(coordinator, principal_of(remote_admin), assignment, asset, staff)


def test_update_to_unavailable_asset_refused(coordinator, as_admin, asset, make_asset, staff, other_staff):
    assignment = _assign(coordinator, as_admin, asset, staff)
    broken = make_asset(state=AssetState.NOT_AVAILABLE)
    taken = make_asset()
    _assign(coordinator, as_admin, taken, other_staff)

    with pytest.raises(AssetUnavailable):
        _update(coordinator, as_admin, assignment, broken, staff)
    with pytest.raises(AssetUnavailable):
        _update(coordinator, as_admin, assignment, taken, staff)
    assert coordinator.get_assignment(as_admin, assignment.id).asset_id == asset.id


def test_update_to_inactive_assignee_refused(coordinator, as_admin, asset, staff, make_user):
    assignment = _assign(coordinator, as_admin, asset, staff)
    gone = make_user("left.hn", is_deleted=True)

    with pytest.raises(NotFound):
        _update(coordinator, as_admin, assignment, asset, gone)


def test_update_date_only_moves_later(coordinator, as_admin, asset, staff):
    assignment = _assign(coordinator, as_admin, asset, staff, assigned_date=TODAY + timedelta(days=5))

    with pytest.raises(InvalidRequest):
        _update(coordinator, as_admin, assignment, asset, staff, assigned_date=TODAY + timedelta(days=4))
    with pytest.raises(InvalidRequest):
        _update(coordinator, as_admin, assignment, asset, staff,
                assigned_date=add_years(TODAY, 1) + timedelta(days=1))

    updated = _update(coordinator, as_admin, assignment, asset, staff, assigned_date=TODAY + timedelta(days=9))
    assert updated.assigned_date == TODAY + timedelta(days=9)


# ---------------------------------------------------------------------------
# delete / read
# ---------------------------------------------------------------------------

def test_delete_waiting_assignment(coordinator, as_admin, asset, staff):
    assignment = _assign(coordinator, as_admin, asset, staff)

    coordinator.delete_assignment(as_admin, assignment.id)

    with pytest.raises(NotFound):
        coordinator.get_assignment(as_admin, assignment.id)


def test_delete_accepted_assignment_refused(coordinator, as_admin, as_staff, asset, staff):
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)

    with pytest.raises(InvalidTransition):
        coordinator.delete_assignment(as_admin, assignment.id)


def test_staff_sees_only_own_assignment(coordinator, as_admin, asset, staff, other_staff, principal_of):
    assignment = _assign(coordinator, as_admin, asset, staff)

    assert coordinator.get_assignment(principal_of(staff), assignment.id).id == assignment.id
    with pytest.raises(NotFound):
        coordinator.get_assignment(principal_of(other_staff), assignment.id)


def test_list_my_assignments_hides_finished(coordinator, as_admin, as_staff, asset, make_asset, staff):
    kept = _assign(coordinator, as_admin, asset, staff)
    declined = _assign(coordinator, as_admin, make_asset(), staff)
    coordinator.decline_assignment(as_staff, declined.id)

    assert [a.id for a in coordinator.list_my_assignments(as_staff)] == [kept.id]


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

def test_concurrent_complete_only_one_wins(db, session_factory, coordinator, as_admin, as_staff, asset, staff):
    """Two sessions complete the same request; the stale one gets InvalidTransition"""
    assignment = _accepted(coordinator, as_admin, as_staff, asset, staff)
    request_id = coordinator.request_return(as_staff, assignment.id).id

    # Session A loads both rows before session B commits
    stale = db.get(ReturningRequest, request_id)
    assert stale.state == ReturningRequestState.WAITING_FOR_RETURNING
    assert stale.assignment.state == AssignmentState.ACCEPTED

    other = session_factory()
    try:
        AssignmentCoordinator(other).complete_return(as_admin, request_id)
    finally:
        other.close()

    with pytest.raises(InvalidTransition):
        coordinator.complete_return(as_admin, request_id)

    db.expire_all()
    assert db.get(ReturningRequest, request_id).state == ReturningRequestState.COMPLETED
    assert db.get(Assignment, assignment.id).state == AssignmentState.RETURNED


def test_asset_edit_racing_new_assignment_loses(db, session_factory, monkeypatch, as_admin, asset, staff):
    """An edit that saw the asset unassigned fails once another session assigns it"""
    service = AssetService(db)
    asset_id, staff_id = asset.id, staff.id

    def _assigned_meanwhile(_asset_id):
        other = session_factory()
        try:
            AssignmentCoordinator(other).create_assignment(
                as_admin, asset_id=asset_id, assignee_id=staff_id, assigned_date=date.today()
            )
        finally:
            other.close()
        return False

    monkeypatch.setattr(service, "is_assigned", _assigned_meanwhile)

    with pytest.raises(AssetUnavailable):
        service.update_asset_state(as_admin, asset_id, AssetState.RECYCLED)

    db.expire_all()
    assert db.get(Asset, asset_id).state == AssetState.AVAILABLE
    assert AssetService(db).is_assigned(asset_id)


def test_assignment_racing_asset_edit_loses(db, session_factory, coordinator, as_admin, asset, staff):
    """Assigning from a stale read of the asset fails after another session edits it"""
    stale = db.get(Asset, asset.id)
    assert stale.state == AssetState.AVAILABLE

    other = session_factory()
    try:
        AssetService(other).update_asset_state(as_admin, stale.id, AssetState.NOT_AVAILABLE)
    finally:
        other.close()

    with pytest.raises(AssetUnavailable):
        _assign(coordinator, as_admin, stale, staff)

    db.expire_all()
    assert db.get(Asset, stale.id).state == AssetState.NOT_AVAILABLE
    assert db.query(Assignment).count() == 0


# ---------------------------------------------------------------------------
# Random walk over the operations
# ---------------------------------------------------------------------------

def _check_invariants(db: Session):
    for assignment in db.query(Assignment).filter(Assignment.is_deleted == False).all():
        requests = db.query(ReturningRequest).filter(ReturningRequest.assignment_id == assignment.id).all()
        open_requests = [r for r in requests if r.state == ReturningRequestState.WAITING_FOR_RETURNING]
        completed = [r for r in requests if r.state == ReturningRequestState.COMPLETED]

        assert len(open_requests) <= 1
        assert len(completed) <= 1
        # returned only through a completed request, and vice versa
        assert (assignment.state == AssignmentState.RETURNED) == bool(completed)

    open_per_asset = {}
    for assignment in db.query(Assignment).filter(
        Assignment.is_deleted == False,
        Assignment.state.in_(["waiting_for_acceptance", "accepted"]),
    ).all():
        open_per_asset[assignment.asset_id] = open_per_asset.get(assignment.asset_id, 0) + 1
    assert all(count == 1 for count in open_per_asset.values())


def test_random_operation_sequences_keep_invariants(db, coordinator, as_admin, as_staff, make_asset, staff):
    rng = random.Random(20250310)
    assets = [make_asset() for _ in range(3)]
    operations = ["create", "accept", "decline", "request_return", "complete", "cancel", "delete"]

    for _ in range(300):
        operation = rng.choice(operations)
        assignment_ids = [a.id for a in db.query(Assignment).filter(Assignment.is_deleted == False).all()]
        request_ids = [r.id for r in db.query(ReturningRequest).all()]
        try:
            if operation == "create":
                _assign(coordinator, as_admin, rng.choice(assets), staff)
            elif operation in ("complete", "cancel") and request_ids:
                request_id = rng.choice(request_ids)
                if operation == "complete":
                    coordinator.complete_return(as_admin, request_id)
                else:
                    coordinator.cancel_return(as_admin, request_id)
            elif assignment_ids:
                assignment_id = rng.choice(assignment_ids)
                if operation == "accept":
                    coordinator.accept_assignment(as_staff, assignment_id)
                elif operation == "decline":
                    coordinator.decline_assignment(as_staff, assignment_id)
                elif operation == "request_return":
                    coordinator.request_return(as_staff, assignment_id)
                elif operation == "delete":
                    coordinator.delete_assignment(as_admin, assignment_id)
        except AssetGuardError:
            pass

        _check_invariants(db)
