"""Role and lifecycle state enums.

Values are stored as plain strings in ``String`` columns; the ``str`` mixin
lets a stored value compare equal to its enum member.
"""
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


class AssetState(str, Enum):
    """Stored asset states.

    There is deliberately no ``assigned`` member: an asset is assigned iff an
    open assignment references it, see ``AssetService.is_assigned``.
    """

    AVAILABLE = "available"
    NOT_AVAILABLE = "not_available"
    WAITING_FOR_RECYCLING = "waiting_for_recycling"
    RECYCLED = "recycled"


class AssignmentState(str, Enum):
    WAITING_FOR_ACCEPTANCE = "waiting_for_acceptance"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    RETURNED = "returned"


class ReturningRequestState(str, Enum):
    WAITING_FOR_RETURNING = "waiting_for_returning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssignmentEvent(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    RETURN_COMPLETED = "return_completed"


class ReturningRequestEvent(str, Enum):
    COMPLETE = "complete"
    CANCEL = "cancel"


OPEN_ASSIGNMENT_STATES = (AssignmentState.WAITING_FOR_ACCEPTANCE, AssignmentState.ACCEPTED)
