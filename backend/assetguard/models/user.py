"""User model: login identities with a role and a home location"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from assetguard.database import Base


class User(Base):
    """A staff member or administrator.

    ``role`` and ``location_id`` are copied into every credential issued at
    login, so a change here only takes effect on the next login or refresh.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)   # bcrypt
    role = Column(String(20), nullable=False)              # admin | staff
    location_id = Column(Integer, nullable=False, index=True)
    is_disabled = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
