from fastapi import Request

from order_service.config import settings
from order_service.services.inventory_client import InventoryClient
from shared.event_bus import EventPublisher
from shared.security import USER_ROLES, principal_dependency


def get_publisher(request: Request) -> EventPublisher:
    return request.app.state.event_publisher


def get_inventory_client(request: Request) -> InventoryClient:
    return request.app.state.inventory_client


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


require_user = principal_dependency(lambda: settings.jwt_secret, allowed_roles=USER_ROLES)
