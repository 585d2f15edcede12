"""JWT utilities: RS256 keypair management, credential issuing, validation, and JWKS"""
import base64
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

from jose import jws, jwt
from jose.exceptions import JWSError, JWSSignatureError, JWTError

from assetguard.config import settings
from assetguard.errors import ExpiredCredential, InvalidSignature, MalformedCredential
from assetguard.models.enums import Role
from assetguard.utils.logger import logger

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


class Principal(NamedTuple):
    """Authenticated identity attached to a request. Rebuilt from claims per request."""
    subject_id: int
    role: Role
    session_id: str
    location_id: int


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int


# ---------------------------------------------------------------------------
# Keypair management
# ---------------------------------------------------------------------------

_private_key: Any = None   # cryptography RSAPrivateKey object
_public_key: Any = None    # cryptography RSAPublicKey object


def _load_keypair() -> None:
    """Load or auto-generate the RSA keypair.

    Reads JWT_PRIVATE_KEY from settings (PEM string).
    If absent, generates a fresh RSA-2048 keypair for this process. Credentials
    issued with a generated key stop validating after a restart.
    """
    global _private_key, _public_key

    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    if settings.JWT_PRIVATE_KEY:
        pem = settings.JWT_PRIVATE_KEY.encode()
        _private_key = serialization.load_pem_private_key(pem, password=None)
        _public_key = _private_key.public_key()
        logger.info("JWT keypair loaded from JWT_PRIVATE_KEY setting")
    else:
        _private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        _public_key = _private_key.public_key()
        logger.warning(
            "JWT_PRIVATE_KEY not set, auto-generated RSA-2048 keypair for this process. "
            "All credentials will be invalidated on restart."
        )


def get_private_key() -> Any:
    """Return the loaded private key, initialising on first call."""
    if _private_key is None:
        _load_keypair()
    return _private_key


def get_public_key() -> Any:
    """Return the loaded public key, initialising on first call."""
    if _public_key is None:
        _load_keypair()
    return _public_key


# ---------------------------------------------------------------------------
# Credential issuing
# ---------------------------------------------------------------------------

def _new_session_id() -> str:
    return str(uuid.uuid4())


def _sign(
    principal: Principal,
    token_type: str,
    ttl_seconds: int,
    session_id: str,
    now: Optional[datetime] = None,
) -> str:
    if ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be positive")

    issued_at = int((now or datetime.now(timezone.utc)).timestamp())

    payload: Dict[str, Any] = {
        "sub": str(principal.subject_id),
        "role": Role(principal.role).value,
        "loc": principal.location_id,
        "jti": session_id,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
    }

    headers = {"kid": settings.JWT_KEY_ID} if settings.JWT_KEY_ID else None
    return jwt.encode(payload, get_private_key(), algorithm=settings.JWT_ALGORITHM, headers=headers)


def issue_access_token(
    principal: Principal,
    ttl_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> str:
    """Sign an access credential for ``principal`` under a fresh session id.

    The principal's own ``session_id`` is ignored: every issuance gets its own
    session so it can be revoked on its own.
    """
    ttl = settings.JWT_ACCESS_EXPIRE_SECONDS if ttl_seconds is None else ttl_seconds
    return _sign(principal, ACCESS_TOKEN, ttl, _new_session_id(), now)


def issue_refresh_token(
    principal: Principal,
    ttl_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> str:
    """Sign a refresh credential; its session id is distinct from any access token's."""
    ttl = settings.JWT_REFRESH_EXPIRE_SECONDS if ttl_seconds is None else ttl_seconds
    return _sign(principal, REFRESH_TOKEN, ttl, _new_session_id(), now)


def issue_token_pair(principal: Principal, now: Optional[datetime] = None) -> TokenPair:
    """Issue the access + refresh pair handed out at login and refresh."""
    return TokenPair(
        access_token=issue_access_token(principal, now=now),
        refresh_token=issue_refresh_token(principal, now=now),
        expires_in=settings.JWT_ACCESS_EXPIRE_SECONDS,
        refresh_expires_in=settings.JWT_REFRESH_EXPIRE_SECONDS,
    )


# ---------------------------------------------------------------------------
# Credential validation
# ---------------------------------------------------------------------------

def _int_claim(claims: Dict[str, Any], name: str) -> int:
    value = claims.get(name)
    if isinstance(value, bool):
        raise MalformedCredential(f"Claim '{name}' is not an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedCredential(f"Claim '{name}' is missing or not an integer")


def validate_token(
    token: str,
    expected_type: str = ACCESS_TOKEN,
    now: Optional[datetime] = None,
) -> Principal:
    """Verify a credential and rebuild the Principal it carries.

    Checks, in order:
    1. Structure: three segments with decodable JSON claims
    2. Signature against our public key and configured algorithm
    3. ``exp`` strictly after ``now``
    4. ``sub``, ``role``, ``loc``, ``jti`` present and well-typed, ``type`` matches

    Raises:
        MalformedCredential, InvalidSignature, ExpiredCredential

    Returns:
        The Principal carried by the credential.
    """
    if not token or token.count(".") != 2:
        raise MalformedCredential("Credential must have three segments")

    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise MalformedCredential(str(exc))

    try:
        jws.verify(token, get_public_key(), algorithms=[settings.JWT_ALGORITHM])
    except JWSSignatureError:
        raise InvalidSignature()
    except JWSError as exc:
        # Wrong or disallowed algorithm: not signed with our key either
        logger.debug(f"JWS verification failed: {exc}")
        raise InvalidSignature()

    exp = _int_claim(claims, "exp")
    current = int((now or datetime.now(timezone.utc)).timestamp())
    if exp <= current:
        raise ExpiredCredential()

    if claims.get("type") != expected_type:
        raise MalformedCredential(f"Expected a {expected_type} credential")

    subject_id = _int_claim(claims, "sub")
    location_id = _int_claim(claims, "loc")

    try:
        role = Role(claims.get("role"))
    except ValueError:
        raise MalformedCredential("Unknown role claim")

    session_id = claims.get("jti")
    if not isinstance(session_id, str) or not session_id:
        raise MalformedCredential("Missing session id")

    return Principal(subject_id=subject_id, role=role, session_id=session_id, location_id=location_id)


# ---------------------------------------------------------------------------
# JWKS
# ---------------------------------------------------------------------------

def get_jwks() -> Dict[str, Any]:
    """Return the public key in JWKS format for third-party token verification."""
    public_key = get_public_key()

    # Only RSA keys are supported; the key is already the public half
    try:
        pub_numbers = public_key.public_numbers()
    except AttributeError:
        raise NotImplementedError("JWKS export is only implemented for RSA public keys")

    def _to_base64url(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return base64.urlsafe_b64encode(n.to_bytes(byte_length, "big")).rstrip(b"=").decode()

    key_entry: Dict[str, Any] = {
        "kty": "RSA",
        "use": "sig",
        "alg": settings.JWT_ALGORITHM,
        "n": _to_base64url(pub_numbers.n),
        "e": _to_base64url(pub_numbers.e),
    }

    if settings.JWT_KEY_ID:
        key_entry["kid"] = settings.JWT_KEY_ID

    return {"keys": [key_entry]}
