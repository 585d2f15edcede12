"""Authorization gate: credential validation + revocation check + role allow-list.

The gate is framework-agnostic; ``assetguard.api.deps`` wires it into FastAPI.
Whatever goes wrong inside, callers only ever see two outcomes besides
success: :class:`Unauthorized` ("we don't know who you are") or
:class:`Forbidden` ("we know who you are and you may not do this").
"""
from datetime import datetime
from typing import Iterable, Optional

from assetguard.errors import CredentialError, Forbidden, RevocationStoreUnavailable, Unauthorized
from assetguard.middleware.monitoring import record_auth_failure
from assetguard.models.enums import Role
from assetguard.utils.jwt_utils import ACCESS_TOKEN, Principal, validate_token
from assetguard.utils.logger import logger
from assetguard.utils.revocation import RevocationStore


class AuthorizationGate:
    """Admits or rejects a raw bearer credential for one protected operation."""

    def __init__(self, store: RevocationStore):
        self.store = store

    def authorize(
        self,
        raw_credential: Optional[str],
        allowed_roles: Iterable[Role] = (),
        now: Optional[datetime] = None,
    ) -> Principal:
        """Return the caller's Principal or raise Unauthorized / Forbidden.

        Order matters: revocation is checked before the role, so a revoked
        session is always Unauthorized even when its role would be refused.
        """
        if not raw_credential or not raw_credential.strip():
            self._reject("missing_credential")
            raise Unauthorized("Missing credential")

        try:
            principal = validate_token(raw_credential.strip(), expected_type=ACCESS_TOKEN, now=now)
        except CredentialError as exc:
            self._reject(exc.kind)
            raise Unauthorized()

        try:
            revoked = self.store.is_revoked(principal.session_id)
        except RevocationStoreUnavailable:
            # Fail closed
            self._reject("revocation_store_unavailable", principal)
            raise Unauthorized()

        if revoked:
            self._reject("revoked", principal)
            raise Unauthorized()

        allowed = set(allowed_roles)
        if allowed and principal.role not in allowed:
            self._reject("role_not_allowed", principal)
            raise Forbidden()

        return principal

    @staticmethod
    def _reject(reason: str, principal: Optional[Principal] = None) -> None:
        record_auth_failure(reason)
        extra = {"reason": reason}
        if principal is not None:
            extra["subject_id"] = principal.subject_id
            extra["session_id"] = principal.session_id
        logger.info("Request rejected by authorization gate", extra=extra)
