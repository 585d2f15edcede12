"""RevokedSession model: session id blocklist for credential revocation"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from assetguard.database import Base


class RevokedSession(Base):
    """Stores revoked credential session ids (``jti`` claims).

    Written on logout and on refresh-token rotation, read by the authorization
    gate on every request. A row only counts while ``expires_at`` is in the
    future, which gives the entry the same TTL semantics as a key-value store.
    """

    __tablename__ = "revoked_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), unique=True, nullable=False, index=True)
    revoked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
