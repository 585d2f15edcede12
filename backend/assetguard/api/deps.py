"""API dependencies for authentication and authorization.

Every protected route declares the operation it exposes::

    @router.post("/{assignment_id}/accept")
    def accept(principal: Principal = Depends(require_operation("accept_assignment"))):
        ...

The dependency reads ``Authorization: Bearer <JWT>`` and runs it through the
:class:`~assetguard.utils.authorization.AuthorizationGate` with the allow-list
registered for that operation in ``assetguard.services.permissions``.
"""
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from assetguard.database import get_revocation_db
from assetguard.services.permissions import allowed_roles
from assetguard.utils.authorization import AuthorizationGate
from assetguard.utils.jwt_utils import Principal
from assetguard.utils.revocation import RevocationStore, build_revocation_store

_bearer_scheme = HTTPBearer(auto_error=False)


def get_revocation_store(db: Session = Depends(get_revocation_db)) -> RevocationStore:
    """Revocation store for this request (backend chosen by settings).

    The database backend uses the revocation pool, never the request session.
    """
    return build_revocation_store(db)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[str]:
    return credentials.credentials if credentials else None


def require_operation(operation: str) -> Callable:
    """Return a FastAPI dependency that admits callers allowed to run ``operation``.

    Resolves to the caller's :class:`Principal`; raises ``Unauthorized`` or
    ``Forbidden`` otherwise.
    """
    roles = allowed_roles(operation)

    def _operation_dep(
        token: Optional[str] = Depends(get_bearer_token),
        store: RevocationStore = Depends(get_revocation_store),
    ) -> Principal:
        return AuthorizationGate(store).authorize(token, roles)

    # Give FastAPI a unique name so it doesn't collapse distinct dependencies
    _operation_dep.__name__ = f"require_operation_{operation}"
    return _operation_dep
