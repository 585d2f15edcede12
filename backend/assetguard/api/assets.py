"""Asset endpoints"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from assetguard.api.deps import require_operation
from assetguard.database import get_db
from assetguard.schemas.asset import AssetResponse, AssetStateUpdate
from assetguard.services.asset_service import AssetService, AssetView
from assetguard.utils.jwt_utils import Principal

router = APIRouter(prefix="/assets", tags=["assets"])


def _to_response(view: AssetView) -> AssetResponse:
    """Convert ORM model to response schema"""
    asset = view.asset
    return AssetResponse(
        id=asset.id,
        code=asset.code,
        name=asset.name,
        category_id=asset.category_id,
        location_id=asset.location_id,
        state=asset.state,
        is_assigned=view.is_assigned,
        installed_date=asset.installed_date,
    )


@router.get("/{asset_id}", response_model=AssetResponse)
def get_asset(
    asset_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("get_asset")),
):
    """Get an asset in the admin's location, with its derived assigned flag"""
    return _to_response(AssetService(db).get_asset(principal, asset_id))


@router.put("/{asset_id}/state", response_model=AssetResponse)
def update_asset_state(
    asset_id: int,
    body: AssetStateUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("update_asset_state")),
):
    """
    Change the stored state of an asset (admin only).

    Refused with 409 while the asset is in an open assignment, and for any
    target that is not a stored state.
    """
    return _to_response(AssetService(db).update_asset_state(principal, asset_id, body.state))


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_asset(
    asset_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation("delete_asset")),
):
    """Soft delete an asset that has never been assigned (admin only)"""
    AssetService(db).delete_asset(principal, asset_id)
