"""ReturningRequest model"""
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from assetguard.database import Base
from assetguard.models.enums import ReturningRequestState

_OPEN_REQUEST = text("state = 'waiting_for_returning' AND is_deleted = false")


class ReturningRequest(Base):
    """Request by an assignee to hand an accepted asset back.

    Terminated by an admin: ``completed`` (the assignment becomes ``returned``
    in the same commit) or ``cancelled`` (the assignment stays ``accepted``).
    """

    __tablename__ = "returning_requests"

    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id"), nullable=False, index=True)
    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    accepted_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    return_date = Column(Date, nullable=True)
    state = Column(String(32), default=ReturningRequestState.WAITING_FOR_RETURNING.value, nullable=False, index=True)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    assignment = relationship("Assignment", back_populates="returning_requests")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # At most one open returning request per assignment
        Index(
            "uq_returning_requests_open_assignment",
            "assignment_id",
            unique=True,
            sqlite_where=_OPEN_REQUEST,
            postgresql_where=_OPEN_REQUEST,
        ),
    )
