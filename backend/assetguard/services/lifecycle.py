"""Lifecycle state machine for assets, assignments and returning requests.

Pure functions, no I/O. Each ``*_transition`` returns ``(next_state, ok)``;
the matching ``require_*`` raises :class:`InvalidTransition` instead of
returning ``ok=False``.

Assignment::

    waiting_for_acceptance --accept-----------> accepted
    waiting_for_acceptance --decline----------> declined   (terminal)
    accepted               --return_completed-> returned   (terminal)

Returning request::

    waiting_for_returning --complete--> completed  (terminal)
    waiting_for_returning --cancel----> cancelled  (terminal)

Assets have no workflow: any stored state may be edited into any other.
"""
from typing import Dict, Optional, Tuple, Union

from assetguard.errors import InvalidTransition
from assetguard.models.enums import (
    OPEN_ASSIGNMENT_STATES,
    AssetState,
    AssignmentEvent,
    AssignmentState,
    ReturningRequestEvent,
    ReturningRequestState,
)

_ASSIGNMENT_TRANSITIONS: Dict[Tuple[AssignmentState, AssignmentEvent], AssignmentState] = {
    (AssignmentState.WAITING_FOR_ACCEPTANCE, AssignmentEvent.ACCEPT): AssignmentState.ACCEPTED,
    (AssignmentState.WAITING_FOR_ACCEPTANCE, AssignmentEvent.DECLINE): AssignmentState.DECLINED,
    (AssignmentState.ACCEPTED, AssignmentEvent.RETURN_COMPLETED): AssignmentState.RETURNED,
}

_RETURNING_REQUEST_TRANSITIONS: Dict[Tuple[ReturningRequestState, ReturningRequestEvent], ReturningRequestState] = {
    (ReturningRequestState.WAITING_FOR_RETURNING, ReturningRequestEvent.COMPLETE): ReturningRequestState.COMPLETED,
    (ReturningRequestState.WAITING_FOR_RETURNING, ReturningRequestEvent.CANCEL): ReturningRequestState.CANCELLED,
}

_TERMINAL_STATES = {
    AssignmentState.DECLINED,
    AssignmentState.RETURNED,
    ReturningRequestState.COMPLETED,
    ReturningRequestState.CANCELLED,
}

_DELETABLE_ASSIGNMENT_STATES = {AssignmentState.WAITING_FOR_ACCEPTANCE, AssignmentState.DECLINED}
_EDITABLE_ASSIGNMENT_STATES = {AssignmentState.WAITING_FOR_ACCEPTANCE}

ASSET_EDIT_EVENT = "edit"
ASSIGNMENT_DELETE_EVENT = "delete"
ASSIGNMENT_UPDATE_EVENT = "update"


def _coerce(enum_cls, value):
    """Turn a stored string into its enum member, or None if unknown."""
    try:
        return enum_cls(value)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Asset
# ---------------------------------------------------------------------------

def asset_transition(current: Union[AssetState, str], target: Union[AssetState, str]) -> Tuple[Optional[AssetState], bool]:
    """Any stored state may become any other stored state via an explicit edit.

    Anything outside the four stored values (notably "assigned", which is
    derived and never written) is refused.
    """
    current_state = _coerce(AssetState, current)
    target_state = _coerce(AssetState, target)
    if current_state is None or target_state is None:
        return None, False
    return target_state, True


def require_asset_transition(current: Union[AssetState, str], target: Union[AssetState, str]) -> AssetState:
    next_state, ok = asset_transition(current, target)
    if not ok:
        raise InvalidTransition(_value(current), f"{ASSET_EDIT_EVENT}:{_value(target)}")
    return next_state


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

def assignment_transition(
    current: Union[AssignmentState, str],
    event: Union[AssignmentEvent, str],
) -> Tuple[Optional[AssignmentState], bool]:
    key = (_coerce(AssignmentState, current), _coerce(AssignmentEvent, event))
    next_state = _ASSIGNMENT_TRANSITIONS.get(key)
    return next_state, next_state is not None


def require_assignment_transition(
    current: Union[AssignmentState, str],
    event: Union[AssignmentEvent, str],
) -> AssignmentState:
    next_state, ok = assignment_transition(current, event)
    if not ok:
        raise InvalidTransition(_value(current), _value(event))
    return next_state


def is_open_assignment(state: Union[AssignmentState, str]) -> bool:
    """Open = not yet declined or returned."""
    return _coerce(AssignmentState, state) in OPEN_ASSIGNMENT_STATES


def can_delete_assignment(state: Union[AssignmentState, str]) -> bool:
    """Only assignments nobody has accepted yet, or that were declined, may be deleted."""
    return _coerce(AssignmentState, state) in _DELETABLE_ASSIGNMENT_STATES


def require_assignment_deletable(state: Union[AssignmentState, str]) -> None:
    if not can_delete_assignment(state):
        raise InvalidTransition(_value(state), ASSIGNMENT_DELETE_EVENT)


def can_update_assignment(state: Union[AssignmentState, str]) -> bool:
    """Asset, assignee, date and note can only change before the assignee answers."""
    return _coerce(AssignmentState, state) in _EDITABLE_ASSIGNMENT_STATES


def require_assignment_updatable(state: Union[AssignmentState, str]) -> None:
    if not can_update_assignment(state):
        raise InvalidTransition(
            _value(state),
            ASSIGNMENT_UPDATE_EVENT,
            "Only assignments waiting for acceptance can be edited",
        )


# ---------------------------------------------------------------------------
# Returning request
# ---------------------------------------------------------------------------

def returning_request_transition(
    current: Union[ReturningRequestState, str],
    event: Union[ReturningRequestEvent, str],
) -> Tuple[Optional[ReturningRequestState], bool]:
    key = (_coerce(ReturningRequestState, current), _coerce(ReturningRequestEvent, event))
    next_state = _RETURNING_REQUEST_TRANSITIONS.get(key)
    return next_state, next_state is not None


def require_returning_request_transition(
    current: Union[ReturningRequestState, str],
    event: Union[ReturningRequestEvent, str],
) -> ReturningRequestState:
    next_state, ok = returning_request_transition(current, event)
    if not ok:
        raise InvalidTransition(_value(current), _value(event))
    return next_state


def is_terminal(state) -> bool:
    return state in _TERMINAL_STATES


def _value(item) -> str:
    return item.value if hasattr(item, "value") else item
