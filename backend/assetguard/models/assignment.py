"""Assignment model"""
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from assetguard.database import Base
from assetguard.models.enums import AssignmentState

_OPEN_ASSIGNMENT = text(
    "state IN ('waiting_for_acceptance', 'accepted') AND is_deleted = false"
)


class Assignment(Base):
    """Assignment of one asset to one user.

    ``version`` is the optimistic-concurrency counter: an UPDATE issued from a
    stale copy matches no row and SQLAlchemy raises ``StaleDataError``.
    """

    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    assigned_to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_date = Column(Date, nullable=False)
    state = Column(String(32), default=AssignmentState.WAITING_FOR_ACCEPTANCE.value, nullable=False, index=True)
    note = Column(Text, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    asset = relationship("Asset", back_populates="assignments")
    returning_requests = relationship("ReturningRequest", back_populates="assignment")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # At most one open assignment per asset
        Index(
            "uq_assignments_open_asset",
            "asset_id",
            unique=True,
            sqlite_where=_OPEN_ASSIGNMENT,
            postgresql_where=_OPEN_ASSIGNMENT,
        ),
    )
