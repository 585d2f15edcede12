"""Asset model"""
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String
from sqlalchemy.orm import relationship

from assetguard.database import Base
from assetguard.models.enums import AssetState


class Asset(Base):
    """A physical asset.

    ``state`` only ever holds one of the four stored ``AssetState`` values.
    Whether the asset is currently assigned is derived from its assignments.

    ``version`` is bumped by every write, including the touch made when an
    assignment claims the asset, so an edit based on a stale read fails with
    ``StaleDataError`` instead of overwriting a freshly assigned asset.
    """

    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category_id = Column(Integer, nullable=False, index=True)
    location_id = Column(Integer, nullable=False, index=True)
    state = Column(String(32), default=AssetState.AVAILABLE.value, nullable=False)
    installed_date = Column(Date, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    assignments = relationship("Assignment", back_populates="asset")

    __mapper_args__ = {"version_id_col": version}
