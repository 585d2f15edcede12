"""Per-operation role allow-lists.

Routes name the operation they expose, never a role, so two routes that
expose the same operation always enforce the same rule. An empty tuple
admits any authenticated caller.
"""
from typing import Dict, Tuple

from assetguard.models.enums import Role

_ANY_ROLE: Tuple[Role, ...] = ()
_ADMIN_ONLY = (Role.ADMIN,)
_ADMIN_OR_STAFF = (Role.ADMIN, Role.STAFF)

OPERATION_ROLES: Dict[str, Tuple[Role, ...]] = {
    # Session
    "logout": _ANY_ROLE,

    # Assignments
    "create_assignment": _ADMIN_ONLY,
    "update_assignment": _ADMIN_ONLY,
    "accept_assignment": _ADMIN_OR_STAFF,
    "decline_assignment": _ADMIN_OR_STAFF,
    "request_return": _ADMIN_OR_STAFF,
    "get_assignment": _ADMIN_OR_STAFF,
    "list_my_assignments": _ADMIN_OR_STAFF,
    "delete_assignment": _ADMIN_ONLY,

    # Returning requests
    "list_returning_requests": _ADMIN_ONLY,
    "complete_return": _ADMIN_ONLY,
    "cancel_return": _ADMIN_ONLY,

    # Assets
    "get_asset": _ADMIN_ONLY,
    "update_asset_state": _ADMIN_ONLY,
    "delete_asset": _ADMIN_ONLY,
}


def allowed_roles(operation: str) -> Tuple[Role, ...]:
    """Return the allow-list for ``operation``; unknown names are a programming error."""
    try:
        return OPERATION_ROLES[operation]
    except KeyError:
        raise KeyError(f"No role allow-list registered for operation '{operation}'")
