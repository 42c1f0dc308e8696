"""
Inventory proxy - push stock levels to a user's connected Shopify store.

The caller names one of their own platform connections; its stored
(encrypted) access token is used for the Shopify call, so provider
credentials never leave the backend.
"""
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tandril.config import Settings
from tandril.errors import ConfigurationError, NotFoundError, ValidationError
from tandril.integrations.shopify import set_inventory_level
from tandril.models.platform import PlatformConnection
from tandril.utils.encryption import decrypt_value

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("platform_id", "inventory_item_id", "location_id", "quantity")


@dataclass
class InventoryUpdate:
    platform_id: uuid.UUID
    inventory_item_id: int
    location_id: int
    quantity: int


def _as_int(params: dict, name: str) -> int:
    value = params[name]
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name} parameter", field=name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name} parameter", field=name)


def parse_inventory_update(params: dict) -> InventoryUpdate:
    """Validate the request body. Raises ValidationError naming the first bad field."""
    for name in REQUIRED_FIELDS:
        # quantity may legitimately be 0
        if params.get(name) is None or params.get(name) == "":
            raise ValidationError(f"Missing required parameter: {name}", field=name)

    try:
        platform_id = uuid.UUID(str(params["platform_id"]))
    except ValueError:
        raise ValidationError("Invalid platform_id parameter", field="platform_id")

    return InventoryUpdate(
        platform_id=platform_id,
        inventory_item_id=_as_int(params, "inventory_item_id"),
        location_id=_as_int(params, "location_id"),
        quantity=_as_int(params, "quantity"),
    )


async def update_shopify_inventory(
    session: AsyncSession,
    settings: Settings,
    user_id: str,
    params: dict,
) -> dict:
    update = parse_inventory_update(params)

    result = await session.execute(
        select(PlatformConnection).where(and_(
            PlatformConnection.id == update.platform_id,
            PlatformConnection.user_id == user_id,
            PlatformConnection.platform_type == "shopify",
            PlatformConnection.is_active.is_(True),
        ))
    )
    platform = result.scalar_one_or_none()
    if platform is None:
        raise NotFoundError("Platform not found or not accessible")

    access_token = decrypt_value(platform.access_token)
    if not access_token or not platform.shop_domain:
        raise ConfigurationError("Platform is missing Shopify credentials")

    logger.info(
        "Updating inventory item %d at location %d to %d",
        update.inventory_item_id, update.location_id, update.quantity,
        extra={"shop_domain": platform.shop_domain, "user_id": user_id},
    )
    inventory_level = await set_inventory_level(
        platform.shop_domain,
        access_token,
        inventory_item_id=update.inventory_item_id,
        location_id=update.location_id,
        available=update.quantity,
        api_version=settings.shopify_api_version,
    )
    return {
        "inventory_level": inventory_level,
        "message": f"Inventory updated to {update.quantity}",
    }
