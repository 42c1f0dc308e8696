"""
Inventory endpoint - proxies stock updates to the user's connected Shopify store.

- POST /api/v1/inventory/shopify/update (Bearer auth)
  body: {platform_id, inventory_item_id, location_id, quantity}
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tandril.api.auth import get_current_user_id
from tandril.api.params import read_json_params
from tandril.config import Settings, get_settings
from tandril.database import get_db
from tandril.schemas.api_responses import (
    ErrorResponse,
    InventoryUpdateData,
    InventoryUpdateResponse,
)
from tandril.services.inventory import update_shopify_inventory

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/inventory",
    tags=["inventory"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)


@router.post("/shopify/update", response_model=InventoryUpdateResponse)
async def shopify_inventory_update(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
):
    params = await read_json_params(request)
    result = await update_shopify_inventory(db, settings, user_id, params)
    return InventoryUpdateResponse(data=InventoryUpdateData(**result))
