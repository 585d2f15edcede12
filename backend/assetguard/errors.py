"""Error taxonomy shared by the gate, the lifecycle engine and the coordinator.

Every error carries a stable ``kind`` string and the HTTP status the API layer
renders it with. Credential errors (``MalformedCredential``,
``ExpiredCredential``, ``InvalidSignature``) never reach clients directly: the
authorization gate folds them into ``Unauthorized``. So does a
``RevocationStoreUnavailable`` raised by a lookup; one raised while writing a
revocation (logout, refresh) is answered with 503.
"""
from typing import Optional


class AssetGuardError(Exception):
    """Base class for all domain errors."""

    kind: str = "error"
    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Credential errors (internal to TokenValidator)
# ---------------------------------------------------------------------------

class CredentialError(AssetGuardError):
    kind = "invalid_credential"
    status_code = 401
    default_message = "Invalid credential"


class MalformedCredential(CredentialError):
    kind = "malformed_credential"
    default_message = "Credential is malformed"


class ExpiredCredential(CredentialError):
    kind = "expired_credential"
    default_message = "Credential has expired"


class InvalidSignature(CredentialError):
    kind = "invalid_signature"
    default_message = "Credential signature is invalid"


class RevocationStoreUnavailable(AssetGuardError):
    kind = "revocation_store_unavailable"
    status_code = 503
    default_message = "Revocation store unavailable"


# ---------------------------------------------------------------------------
# Gate errors
# ---------------------------------------------------------------------------

class Unauthorized(AssetGuardError):
    kind = "unauthorized"
    status_code = 401
    default_message = "Authentication required"


class Forbidden(AssetGuardError):
    kind = "forbidden"
    status_code = 403
    default_message = "Permission denied"


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------

class NotFound(AssetGuardError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class InvalidRequest(AssetGuardError):
    kind = "invalid_request"
    status_code = 400
    default_message = "Invalid request"


class InvalidTransition(AssetGuardError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current_state: str, event: str, message: Optional[str] = None):
        self.current_state = current_state
        self.event = event
        super().__init__(message or f"Cannot apply '{event}' in state '{current_state}'")


class ConflictingOpenRequest(AssetGuardError):
    kind = "conflicting_open_request"
    status_code = 409
    default_message = "A returning request is already open for this assignment"


class AssetUnavailable(AssetGuardError):
    kind = "asset_unavailable"
    status_code = 409
    default_message = "Asset is not available for assignment"
