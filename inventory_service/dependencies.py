from fastapi import Request

from inventory_service.config import settings
from shared.event_bus import EventPublisher
from shared.security import ADMIN_ROLES, principal_dependency


def get_publisher(request: Request) -> EventPublisher:
    return request.app.state.event_publisher


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


require_authenticated = principal_dependency(lambda: settings.jwt_secret)
require_admin = principal_dependency(lambda: settings.jwt_secret, allowed_roles=ADMIN_ROLES)
