"""Session revocation stores.

A revoked session id makes every credential carrying it unusable, regardless
of the credential's own ``exp``. Entries carry a TTL that must cover the
remaining lifetime of the credential, after which they expire on their own.

Two backends implement :class:`RevocationStore`:

- :class:`DatabaseRevocationStore`: the ``revoked_sessions`` table
- :class:`RedisRevocationStore`: ``SET key 1 EX ttl NX`` + ``EXPIRE key ttl GT`` / ``EXISTS key``

Both raise :class:`~assetguard.errors.RevocationStoreUnavailable` when the
backing store cannot answer. Callers must treat that as "revoked".
"""
from datetime import datetime, timedelta
from typing import Optional

import redis
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from assetguard.config import settings
from assetguard.errors import RevocationStoreUnavailable
from assetguard.models.revoked_session import RevokedSession
from assetguard.utils.logger import logger


class RevocationStore:
    """Interface: session id -> revoked, with per-entry TTL."""

    def is_revoked(self, session_id: str) -> bool:
        raise NotImplementedError

    def revoke(self, session_id: str, ttl_seconds: int) -> None:
        raise NotImplementedError


def _check_ttl(ttl_seconds: int) -> None:
    if ttl_seconds <= 0:
        raise ValueError("Revocation TTL must be positive")


class DatabaseRevocationStore(RevocationStore):
    """Revocation entries kept in the ``revoked_sessions`` table.

    Rows past ``expires_at`` are ignored on lookup, so no sweeper is needed
    for correctness.
    Requests get a session on the revocation pool, whose waits are capped by
    ``REVOCATION_TIMEOUT_MS`` (see :func:`assetguard.database.revocation_engine_kwargs`).
    """

    def __init__(self, db: Session):
        self.db = db

    def is_revoked(self, session_id: str) -> bool:
        try:
            entry = self.db.query(RevokedSession).filter(
                RevokedSession.session_id == session_id,
                RevokedSession.expires_at > datetime.utcnow(),
            ).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Revocation lookup failed", extra={"session_id": session_id, "reason": str(exc)})
            raise RevocationStoreUnavailable()
        return entry is not None

    def _extend_or_insert(self, session_id: str, expires_at: datetime) -> None:
        entry = self.db.query(RevokedSession).filter(RevokedSession.session_id == session_id).first()
        if entry:
            # Never shorten an existing entry
            entry.expires_at = max(entry.expires_at, expires_at)
        else:
            self.db.add(RevokedSession(session_id=session_id, expires_at=expires_at))
        self.db.commit()

    def revoke(self, session_id: str, ttl_seconds: int) -> None:
        _check_ttl(ttl_seconds)
        expires_at = datetime.utcnow() + timedelta(seconds=ttl_seconds)

        try:
            try:
                self._extend_or_insert(session_id, expires_at)
            except IntegrityError:
                # A concurrent revoke inserted the row first; extend theirs
                self.db.rollback()
                self._extend_or_insert(session_id, expires_at)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Revocation write failed", extra={"session_id": session_id, "reason": str(exc)})
            raise RevocationStoreUnavailable()

        logger.info("Revoked session", extra={"session_id": session_id, "operation": "revoke_session"})


class RedisRevocationStore(RevocationStore):
    """Revocation entries as Redis keys with a native TTL."""

    def __init__(self, client: redis.Redis, key_prefix: Optional[str] = None):
        self.client = client
        self.key_prefix = key_prefix or settings.REVOCATION_KEY_PREFIX

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}:{session_id}"

    def is_revoked(self, session_id: str) -> bool:
        try:
            return bool(self.client.exists(self._key(session_id)))
        except redis.RedisError as exc:
            logger.error("Revocation lookup failed", extra={"session_id": session_id, "reason": str(exc)})
            raise RevocationStoreUnavailable()

    def revoke(self, session_id: str, ttl_seconds: int) -> None:
        _check_ttl(ttl_seconds)
        key = self._key(session_id)
        try:
            if not self.client.set(key, 1, ex=ttl_seconds, nx=True):
                # Key exists: EXPIRE GT only ever lengthens it (Redis 7+).
                # 0 means it already outlives ttl_seconds, or expired just now.
                if not self.client.expire(key, ttl_seconds, gt=True):
                    self.client.set(key, 1, ex=ttl_seconds, nx=True)
        except redis.RedisError as exc:
            logger.error("Revocation write failed", extra={"session_id": session_id, "reason": str(exc)})
            raise RevocationStoreUnavailable()

        logger.info("Revoked session", extra={"session_id": session_id, "operation": "revoke_session"})


_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """Return the shared Redis client, created on first use.

    Socket timeouts are kept short so a slow store turns into a fast
    fail-closed rejection instead of a hung request.
    """
    global _redis_client
    if _redis_client is None:
        timeout = settings.revocation_timeout_seconds
        _redis_client = redis.Redis.from_url(
            settings.REDIS_URL,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
    return _redis_client


def build_revocation_store(db: Session) -> RevocationStore:
    """Pick the configured backend for this request."""
    if settings.REVOCATION_BACKEND == "redis":
        return RedisRevocationStore(get_redis_client())
    return DatabaseRevocationStore(db)
