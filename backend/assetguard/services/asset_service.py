"""Asset reads and edits.

Whether an asset is assigned is never stored on the asset; it is derived from
its open assignments every time it is asked for.
"""
from typing import NamedTuple, Union

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from assetguard.errors import AssetUnavailable, InvalidRequest, NotFound
from assetguard.middleware.monitoring import record_transition
from assetguard.models.asset import Asset
from assetguard.models.assignment import Assignment
from assetguard.models.enums import OPEN_ASSIGNMENT_STATES, AssetState
from assetguard.services.lifecycle import ASSET_EDIT_EVENT, require_asset_transition
from assetguard.utils.jwt_utils import Principal
from assetguard.utils.logger import logger


class AssetView(NamedTuple):
    asset: Asset
    is_assigned: bool


class AssetService:
    """Admin-side asset operations, scoped to the caller's location."""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, principal: Principal, asset_id: int) -> Asset:
        asset = self.db.query(Asset).filter(
            Asset.id == asset_id,
            Asset.is_deleted == False,
            Asset.location_id == principal.location_id,
        ).first()
        if not asset:
            raise NotFound(f"Asset {asset_id} not found")
        return asset

    def is_assigned(self, asset_id: int) -> bool:
        """True iff a non-deleted assignment in an open state references the asset."""
        return self.db.query(Assignment.id).filter(
            Assignment.asset_id == asset_id,
            Assignment.is_deleted == False,
            Assignment.state.in_([s.value for s in OPEN_ASSIGNMENT_STATES]),
        ).first() is not None

    def _commit(self, asset: Asset) -> None:
        """Commit an asset write; losing the row to a concurrent writer is AssetUnavailable."""
        code = asset.code
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise AssetUnavailable(f"Asset {code} was changed by another request; reload and retry")

    def _has_history(self, asset_id: int) -> bool:
        return self.db.query(Assignment.id).filter(
            Assignment.asset_id == asset_id,
            Assignment.is_deleted == False,
        ).first() is not None

    def get_asset(self, principal: Principal, asset_id: int) -> AssetView:
        asset = self._get(principal, asset_id)
        return AssetView(asset=asset, is_assigned=self.is_assigned(asset.id))

    def update_asset_state(
        self,
        principal: Principal,
        asset_id: int,
        target: Union[AssetState, str],
    ) -> AssetView:
        """Edit the stored state of an asset that is not currently assigned.

        Raises:
            NotFound: missing, deleted or outside the caller's location
            AssetUnavailable: the asset is in an open assignment, or was claimed
                by one after it was read
            InvalidTransition: ``target`` is not one of the stored states
        """
        asset = self._get(principal, asset_id)
        if self.is_assigned(asset.id):
            raise AssetUnavailable(f"Asset {asset.code} is assigned and cannot be edited")

        from_state = asset.state
        asset.state = require_asset_transition(from_state, target).value
        self._commit(asset)
        self.db.refresh(asset)

        record_transition("asset", ASSET_EDIT_EVENT)
        logger.info(
            f"Asset {asset.code}: {from_state} -> {asset.state}",
            extra={
                "operation": "update_asset_state",
                "entity_id": asset.id,
                "from_state": from_state,
                "to_state": asset.state,
                "subject_id": principal.subject_id,
            },
        )
        return AssetView(asset=asset, is_assigned=False)

    def delete_asset(self, principal: Principal, asset_id: int) -> None:
        """Soft delete an asset that has never been assigned."""
        asset = self._get(principal, asset_id)
        if self.is_assigned(asset.id):
            raise AssetUnavailable(f"Asset {asset.code} is assigned and cannot be deleted")
        if self._has_history(asset.id):
            raise InvalidRequest(f"Asset {asset.code} has assignment history and cannot be deleted")

        asset.is_deleted = True
        self._commit(asset)

        logger.info(
            f"Asset deleted: {asset_id}",
            extra={"operation": "delete_asset", "entity_id": asset_id, "subject_id": principal.subject_id},
        )
