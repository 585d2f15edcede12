"""Assignment coordinator: the only code path that mutates assignments and returning requests.

Each operation loads the rows it needs, asks the lifecycle state machine
whether the event is legal, applies the result and commits once. Rows carry a
``version`` column, so a concurrent writer that got there first turns our
commit into ``StaleDataError``, reported as :class:`InvalidTransition`.
"""
from datetime import date, datetime
from typing import List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from assetguard.config import settings
from assetguard.errors import (
    AssetUnavailable,
    ConflictingOpenRequest,
    Forbidden,
    InvalidRequest,
    InvalidTransition,
    NotFound,
)
from assetguard.middleware.monitoring import record_transition
from assetguard.models.asset import Asset
from assetguard.models.assignment import Assignment
from assetguard.models.enums import (
    OPEN_ASSIGNMENT_STATES,
    AssetState,
    AssignmentEvent,
    AssignmentState,
    ReturningRequestEvent,
    ReturningRequestState,
    Role,
)
from assetguard.models.returning_request import ReturningRequest
from assetguard.models.user import User
from assetguard.services.lifecycle import (
    ASSIGNMENT_DELETE_EVENT,
    ASSIGNMENT_UPDATE_EVENT,
    require_assignment_deletable,
    require_assignment_transition,
    require_assignment_updatable,
    require_returning_request_transition,
)
from assetguard.utils.jwt_utils import Principal
from assetguard.utils.logger import logger

_HIDDEN_FROM_ASSIGNEE = (AssignmentState.DECLINED.value, AssignmentState.RETURNED.value)


def add_years(start: date, years: int) -> date:
    """Same calendar day ``years`` later; Feb 29 falls back to Feb 28."""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


class AssignmentCoordinator:
    """Applies assignment and returning-request operations for one DB session."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _get_assignment(self, assignment_id: int) -> Assignment:
        assignment = self.db.query(Assignment).filter(
            Assignment.id == assignment_id,
            Assignment.is_deleted == False,
        ).first()
        if not assignment:
            raise NotFound(f"Assignment {assignment_id} not found")
        return assignment

    def _get_returning_request(self, principal: Principal, request_id: int) -> ReturningRequest:
        """Load a returning request visible to the calling admin's location."""
        returning_request = (
            self.db.query(ReturningRequest)
            .join(Assignment, Assignment.id == ReturningRequest.assignment_id)
            .join(Asset, Asset.id == Assignment.asset_id)
            .filter(
                ReturningRequest.id == request_id,
                ReturningRequest.is_deleted == False,
                Assignment.is_deleted == False,
                Asset.location_id == principal.location_id,
            )
            .first()
        )
        if not returning_request:
            raise NotFound(f"Returning request {request_id} not found")
        return returning_request

    @staticmethod
    def _require_assignee(principal: Principal, assignment: Assignment) -> None:
        if assignment.assigned_to_user_id != principal.subject_id:
            raise Forbidden("Only the assignee may act on this assignment")

    # ------------------------------------------------------------------
    # Commit helpers
    # ------------------------------------------------------------------

    def _commit_transition(self, current_state: str, event: str) -> None:
        """Commit, turning a lost optimistic-concurrency race into InvalidTransition."""
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise InvalidTransition(
                current_state,
                event,
                "The record was changed by another request; reload and retry",
            )

    @staticmethod
    def _log_transition(operation: str, entity: str, entity_id: int, event: str,
                        from_state: str, to_state: str, principal: Principal) -> None:
        record_transition(entity, event)
        logger.info(
            f"{entity} {entity_id}: {from_state} -> {to_state}",
            extra={
                "operation": operation,
                "entity_id": entity_id,
                "from_state": from_state,
                "to_state": to_state,
                "subject_id": principal.subject_id,
                "session_id": principal.session_id,
            },
        )

    # ------------------------------------------------------------------
    # Checks shared by create and update
    # ------------------------------------------------------------------

    def _get_assignable_asset(self, principal: Principal, asset_id: int) -> Asset:
        """Load an asset the admin may hand out: in their location, available, unclaimed."""
        asset = self.db.query(Asset).filter(
            Asset.id == asset_id,
            Asset.is_deleted == False,
            Asset.location_id == principal.location_id,
        ).first()
        if not asset:
            raise NotFound(f"Asset {asset_id} not found in your location")

        if asset.state != AssetState.AVAILABLE.value:
            raise AssetUnavailable(f"Asset {asset.code} is '{asset.state}'")

        open_assignment = self.db.query(Assignment).filter(
            Assignment.asset_id == asset.id,
            Assignment.is_deleted == False,
            Assignment.state.in_([s.value for s in OPEN_ASSIGNMENT_STATES]),
        ).first()
        if open_assignment:
            raise AssetUnavailable(f"Asset {asset.code} is already assigned")
        return asset

    def _get_active_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(
            User.id == user_id,
            User.is_deleted == False,
            User.is_disabled == False,
        ).first()
        if not user:
            raise NotFound(f"User {user_id} not found or inactive")
        return user

    @staticmethod
    def _check_assigned_date(assigned_date: date, earliest: date, today: date) -> None:
        latest = add_years(today, settings.ASSIGNMENT_MAX_YEARS_AHEAD)
        if assigned_date < earliest or assigned_date > latest:
            raise InvalidRequest(f"Assigned date must be between {earliest} and {latest}")

    @staticmethod
    def _claim(asset: Asset) -> None:
        # Writing the row bumps its version; a concurrent asset edit then goes stale
        asset.updated_at = datetime.utcnow()

    # ------------------------------------------------------------------
    # Assignment operations
    # ------------------------------------------------------------------

    def create_assignment(
        self,
        principal: Principal,
        asset_id: int,
        assignee_id: int,
        assigned_date: date,
        note: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Assignment:
        """Assign an available asset in the admin's location to an active user.

        Raises:
            NotFound: asset outside the admin's location, deleted or missing; assignee missing or inactive
            AssetUnavailable: asset not ``available``, already in an open assignment, or edited concurrently
            InvalidRequest: assigned date outside [today, today + horizon]
        """
        today = today or date.today()

        asset = self._get_assignable_asset(principal, asset_id)
        assignee = self._get_active_user(assignee_id)
        self._check_assigned_date(assigned_date, today, today)

        asset_code = asset.code
        assignment = Assignment(
            asset_id=asset.id,
            assigned_to_user_id=assignee.id,
            assigned_by_user_id=principal.subject_id,
            assigned_date=assigned_date,
            state=AssignmentState.WAITING_FOR_ACCEPTANCE.value,
            note=note.strip() if note else note,
        )
        self._claim(asset)
        self.db.add(assignment)
        try:
            self.db.commit()
        except (IntegrityError, StaleDataError):
            # Lost the race for the open-assignment slot, or the asset was edited meanwhile
            self.db.rollback()
            raise AssetUnavailable(f"Asset {asset_code} is no longer available")
        self.db.refresh(assignment)

        logger.info(
            f"Assignment created: {assignment.id}",
            extra={
                "operation": "create_assignment",
                "entity_id": assignment.id,
                "to_state": assignment.state,
                "subject_id": principal.subject_id,
            },
        )
        return assignment

    def update_assignment(
        self,
        principal: Principal,
        assignment_id: int,
        asset_id: int,
        assignee_id: int,
        assigned_date: date,
        note: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Assignment:
        """Edit an assignment the assignee has not answered yet.

        The asset may be swapped for another available one in the admin's
        location. The assigned date may move later, never earlier.

        Raises:
            NotFound: assignment missing or outside the admin's location; asset or assignee as in create
            InvalidTransition: assignment no longer ``waiting_for_acceptance``
            AssetUnavailable: the swapped-in asset cannot be assigned
            InvalidRequest: date earlier than the current one or past the horizon
        """
        today = today or date.today()

        assignment = self._get_assignment(assignment_id)
        if assignment.asset.location_id != principal.location_id:
            raise NotFound(f"Assignment {assignment_id} not found")
        from_state = assignment.state
        require_assignment_updatable(from_state)

        asset = assignment.asset
        if asset_id != assignment.asset_id:
            asset = self._get_assignable_asset(principal, asset_id)
            self._claim(asset)
        assignee = self._get_active_user(assignee_id)
        self._check_assigned_date(assigned_date, assignment.assigned_date, today)

        asset_code = asset.code
        assignment.asset = asset
        assignment.assigned_to_user_id = assignee.id
        assignment.assigned_date = assigned_date
        assignment.note = note.strip() if note else note
        try:
            self._commit_transition(from_state, ASSIGNMENT_UPDATE_EVENT)
        except IntegrityError:
            self.db.rollback()
            raise AssetUnavailable(f"Asset {asset_code} is no longer available")
        self.db.refresh(assignment)

        logger.info(
            f"Assignment updated: {assignment.id}",
            extra={
                "operation": "update_assignment",
                "entity_id": assignment.id,
                "from_state": from_state,
                "subject_id": principal.subject_id,
            },
        )
        return assignment

    def _apply_assignee_event(self, principal: Principal, assignment_id: int,
                              event: AssignmentEvent, operation: str) -> Assignment:
        assignment = self._get_assignment(assignment_id)
        self._require_assignee(principal, assignment)

        from_state = assignment.state
        assignment.state = require_assignment_transition(from_state, event).value
        self._commit_transition(from_state, event.value)
        self.db.refresh(assignment)

        self._log_transition(operation, "assignment", assignment.id, event.value,
                             from_state, assignment.state, principal)
        return assignment

    def accept_assignment(self, principal: Principal, assignment_id: int) -> Assignment:
        return self._apply_assignee_event(principal, assignment_id, AssignmentEvent.ACCEPT, "accept_assignment")

    def decline_assignment(self, principal: Principal, assignment_id: int) -> Assignment:
        return self._apply_assignee_event(principal, assignment_id, AssignmentEvent.DECLINE, "decline_assignment")

    def request_return(self, principal: Principal, assignment_id: int) -> ReturningRequest:
        """Open a returning request for an accepted assignment the caller holds."""
        assignment = self._get_assignment(assignment_id)
        self._require_assignee(principal, assignment)

        if assignment.state != AssignmentState.ACCEPTED.value:
            raise InvalidTransition(
                assignment.state,
                "request_return",
                "Only accepted assignments can be returned",
            )

        existing = self.db.query(ReturningRequest).filter(
            ReturningRequest.assignment_id == assignment.id,
            ReturningRequest.is_deleted == False,
            ReturningRequest.state == ReturningRequestState.WAITING_FOR_RETURNING.value,
        ).first()
        if existing:
            raise ConflictingOpenRequest()

        returning_request = ReturningRequest(
            assignment_id=assignment.id,
            requested_by_user_id=principal.subject_id,
            state=ReturningRequestState.WAITING_FOR_RETURNING.value,
        )
        self.db.add(returning_request)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictingOpenRequest()
        self.db.refresh(returning_request)

        logger.info(
            f"Returning request created: {returning_request.id}",
            extra={
                "operation": "request_return",
                "entity_id": returning_request.id,
                "to_state": returning_request.state,
                "subject_id": principal.subject_id,
            },
        )
        return returning_request

    def delete_assignment(self, principal: Principal, assignment_id: int) -> None:
        """Soft delete an assignment nobody has accepted, or that was declined."""
        assignment = self._get_assignment(assignment_id)
        require_assignment_deletable(assignment.state)

        assignment.is_deleted = True
        self._commit_transition(assignment.state, ASSIGNMENT_DELETE_EVENT)

        logger.info(
            f"Assignment deleted: {assignment_id}",
            extra={
                "operation": "delete_assignment",
                "entity_id": assignment_id,
                "from_state": assignment.state,
                "subject_id": principal.subject_id,
            },
        )

    def get_assignment(self, principal: Principal, assignment_id: int) -> Assignment:
        """Admins see any assignment; staff only their own (others look missing)."""
        assignment = self._get_assignment(assignment_id)
        if principal.role != Role.ADMIN and assignment.assigned_to_user_id != principal.subject_id:
            raise NotFound(f"Assignment {assignment_id} not found")
        return assignment

    def list_my_assignments(self, principal: Principal) -> List[Assignment]:
        return (
            self.db.query(Assignment)
            .filter(
                Assignment.assigned_to_user_id == principal.subject_id,
                Assignment.is_deleted == False,
                Assignment.state.not_in(_HIDDEN_FROM_ASSIGNEE),
            )
            .order_by(Assignment.assigned_date.desc(), Assignment.id.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Returning request operations
    # ------------------------------------------------------------------

    def complete_return(self, principal: Principal, request_id: int, today: Optional[date] = None) -> ReturningRequest:
        """Complete a returning request; its assignment becomes ``returned`` in the same commit."""
        returning_request = self._get_returning_request(principal, request_id)
        assignment = returning_request.assignment

        from_state = returning_request.state
        next_request_state = require_returning_request_transition(from_state, ReturningRequestEvent.COMPLETE)
        assignment_from = assignment.state
        next_assignment_state = require_assignment_transition(assignment_from, AssignmentEvent.RETURN_COMPLETED)

        returning_request.state = next_request_state.value
        returning_request.accepted_by_user_id = principal.subject_id
        returning_request.return_date = today or date.today()
        assignment.state = next_assignment_state.value
        self._commit_transition(from_state, ReturningRequestEvent.COMPLETE.value)
        self.db.refresh(returning_request)

        self._log_transition("complete_return", "returning_request", returning_request.id,
                             ReturningRequestEvent.COMPLETE.value, from_state, returning_request.state, principal)
        self._log_transition("complete_return", "assignment", assignment.id,
                             AssignmentEvent.RETURN_COMPLETED.value, assignment_from, next_assignment_state.value,
                             principal)
        return returning_request

    def cancel_return(self, principal: Principal, request_id: int) -> ReturningRequest:
        """Cancel a returning request; the assignment stays ``accepted``."""
        returning_request = self._get_returning_request(principal, request_id)

        from_state = returning_request.state
        returning_request.state = require_returning_request_transition(
            from_state, ReturningRequestEvent.CANCEL
        ).value
        self._commit_transition(from_state, ReturningRequestEvent.CANCEL.value)
        self.db.refresh(returning_request)

        self._log_transition("cancel_return", "returning_request", returning_request.id,
                             ReturningRequestEvent.CANCEL.value, from_state, returning_request.state, principal)
        return returning_request

    def list_returning_requests(
        self,
        principal: Principal,
        state: Optional[Union[ReturningRequestState, str]] = None,
    ) -> List[ReturningRequest]:
        """Returning requests for assets in the admin's location, newest first."""
        query = (
            self.db.query(ReturningRequest)
            .join(Assignment, Assignment.id == ReturningRequest.assignment_id)
            .join(Asset, Asset.id == Assignment.asset_id)
            .filter(
                ReturningRequest.is_deleted == False,
                Assignment.is_deleted == False,
                Asset.location_id == principal.location_id,
            )
        )

        if state is not None:
            try:
                state = ReturningRequestState(state)
            except ValueError:
                raise InvalidRequest(
                    "state must be one of: " + ", ".join(s.value for s in ReturningRequestState)
                )
            query = query.filter(ReturningRequest.state == state.value)

        return query.order_by(ReturningRequest.created_at.desc(), ReturningRequest.id.desc()).all()
