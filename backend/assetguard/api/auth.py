"""Login, refresh, logout and JWKS endpoints"""
from typing import Any, Dict, Optional

import bcrypt
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from assetguard.api.deps import get_revocation_store, require_operation
from assetguard.config import settings
from assetguard.database import get_db
from assetguard.errors import CredentialError, Forbidden, RevocationStoreUnavailable, Unauthorized
from assetguard.middleware.monitoring import record_auth_failure
from assetguard.middleware.rate_limit import limiter
from assetguard.models.enums import Role
from assetguard.models.user import User
from assetguard.schemas.auth import LoginRequest, LogoutRequest, LogoutResponse, RefreshRequest, TokenResponse
from assetguard.utils.jwt_utils import REFRESH_TOKEN, Principal, get_jwks, issue_token_pair, validate_token
from assetguard.utils.logger import logger
from assetguard.utils.revocation import RevocationStore

router = APIRouter(tags=["authentication"])


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


def _principal_for(user: User) -> Principal:
    # session_id is replaced by a fresh one per issued credential
    return Principal(subject_id=user.id, role=Role(user.role), session_id="", location_id=user.location_id)


def _token_response(user: User) -> TokenResponse:
    pair = issue_token_pair(_principal_for(user))
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        refresh_expires_in=pair.refresh_expires_in,
        user_id=user.id,
        role=user.role,
    )


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------

@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
def login(
    request: Request,
    credentials: LoginRequest,
    db: Session = Depends(get_db),
) -> TokenResponse:
    """Exchange a username and password for an access + refresh token pair.

    Deleted users and wrong passwords get the same 401; a disabled account
    with the right password gets 403.
    """
    user = db.query(User).filter(
        User.username == credentials.username,
        User.is_deleted == False,
    ).first()

    if not user or not verify_password(credentials.password, user.password_hash):
        record_auth_failure("bad_password")
        logger.info("Login failed", extra={"operation": "login", "reason": "bad_password"})
        raise Unauthorized("Invalid username or password")

    if user.is_disabled:
        record_auth_failure("account_disabled")
        logger.info("Login refused for disabled account",
                    extra={"operation": "login", "subject_id": user.id, "reason": "account_disabled"})
        raise Forbidden("Account is disabled")

    logger.info(f"User {user.id} logged in", extra={"operation": "login", "subject_id": user.id})
    return _token_response(user)


# ---------------------------------------------------------------------------
# POST /auth/refresh
# ---------------------------------------------------------------------------

@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(
    body: RefreshRequest,
    db: Session = Depends(get_db),
    store: RevocationStore = Depends(get_revocation_store),
) -> TokenResponse:
    """Rotate a refresh token: the presented one is revoked and a new pair issued.

    Role and location are re-read from the user row, so changes made since
    login take effect here.
    """
    try:
        claims = validate_token(body.refresh_token, expected_type=REFRESH_TOKEN)
    except CredentialError as exc:
        record_auth_failure(exc.kind)
        raise Unauthorized()

    try:
        revoked = store.is_revoked(claims.session_id)
    except RevocationStoreUnavailable:
        record_auth_failure("revocation_store_unavailable")
        raise Unauthorized()
    if revoked:
        record_auth_failure("revoked")
        logger.info("Refresh with revoked session",
                    extra={"operation": "refresh", "session_id": claims.session_id, "reason": "revoked"})
        raise Unauthorized()

    user = db.query(User).filter(
        User.id == claims.subject_id,
        User.is_deleted == False,
        User.is_disabled == False,
    ).first()
    if not user:
        record_auth_failure("inactive_user")
        raise Unauthorized()

    store.revoke(claims.session_id, settings.JWT_REFRESH_EXPIRE_SECONDS)

    logger.info(
        f"Refresh token rotated for user {user.id}",
        extra={"operation": "refresh", "subject_id": user.id, "session_id": claims.session_id},
    )
    return _token_response(user)


# ---------------------------------------------------------------------------
# POST /auth/logout
# ---------------------------------------------------------------------------

@router.post("/auth/logout", response_model=LogoutResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    principal: Principal = Depends(require_operation("logout")),
    store: RevocationStore = Depends(get_revocation_store),
) -> LogoutResponse:
    """Revoke the caller's access session, and their refresh session if one is passed.

    A refresh token that no longer validates is skipped; one that belongs to
    someone else is refused before anything is revoked.
    """
    refresh_session: Optional[str] = None
    if body and body.refresh_token:
        try:
            refresh_claims = validate_token(body.refresh_token, expected_type=REFRESH_TOKEN)
        except CredentialError as exc:
            logger.info("Logout ignored unusable refresh token",
                        extra={"operation": "logout", "subject_id": principal.subject_id, "reason": exc.kind})
        else:
            if refresh_claims.subject_id != principal.subject_id:
                raise Forbidden("Refresh token belongs to another user")
            refresh_session = refresh_claims.session_id

    # The full configured lifetime always covers what is left of the credential
    store.revoke(principal.session_id, settings.JWT_ACCESS_EXPIRE_SECONDS)
    revoked = 1
    if refresh_session:
        store.revoke(refresh_session, settings.JWT_REFRESH_EXPIRE_SECONDS)
        revoked += 1

    logger.info(
        f"User {principal.subject_id} logged out",
        extra={"operation": "logout", "subject_id": principal.subject_id, "session_id": principal.session_id},
    )
    return LogoutResponse(revoked_sessions=revoked)


# ---------------------------------------------------------------------------
# GET /.well-known/jwks.json
# ---------------------------------------------------------------------------

@router.get("/.well-known/jwks.json", response_model=Dict[str, Any])
def jwks() -> Dict[str, Any]:
    """Return the public key set (JWKS) for verifying AssetGuard credentials.

    Unauthenticated; the key is the public half of the RS256 signing key.
    """
    return get_jwks()
