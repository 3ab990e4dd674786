import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.database import get_db
from order_service.dependencies import (
    get_inventory_client,
    get_publisher,
    request_id,
    require_user,
)
from order_service.schemas.order import OrderCreate, OrderResponse
from order_service.services import order_service
from order_service.services.inventory_client import InventoryClient
from shared.event_bus import EventPublisher
from shared.security import Principal

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=OrderResponse)
async def create_order(
    body: OrderCreate,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    req_id: str = Depends(request_id),
) -> OrderResponse:
    logger.info(
        "Received create_order request",
        extra={"request_id": req_id, "user_id": body.user_id, "caller": principal.subject},
    )
    return await order_service.create_order(db, body, publisher, req_id)


@router.post("/from-cart/{user_id}", response_model=OrderResponse)
async def create_order_from_cart(
    user_id: int,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    inventory: InventoryClient = Depends(get_inventory_client),
    publisher: EventPublisher = Depends(get_publisher),
    req_id: str = Depends(request_id),
) -> OrderResponse:
    logger.info(
        "Received create_order_from_cart request",
        extra={"request_id": req_id, "user_id": user_id, "caller": principal.subject},
    )
    return await order_service.create_order_from_cart(db, user_id, inventory, publisher, req_id)


@router.get("/{order_id}/status", response_class=PlainTextResponse)
async def get_order_status(
    order_id: int,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> str:
    status = await order_service.get_order_status(db, order_id)
    return status.value


@router.get("/user/{user_id}", response_model=list[OrderResponse])
async def get_order_history(
    user_id: int,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> list[OrderResponse]:
    return await order_service.get_order_history(db, user_id)


@router.post("/{order_id}/confirm-payment", response_model=OrderResponse)
async def confirm_payment(
    order_id: int,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    req_id: str = Depends(request_id),
) -> OrderResponse:
    logger.info(
        "Received confirm_payment request",
        extra={"request_id": req_id, "order_id": order_id, "caller": principal.subject},
    )
    return await order_service.confirm_payment(db, order_id, publisher, req_id)
