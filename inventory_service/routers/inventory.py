import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_service.config import settings
from inventory_service.database import get_db
from inventory_service.dependencies import get_publisher, request_id, require_admin
from inventory_service.schemas.inventory import (
    InventoryDecreaseRequest,
    InventoryLogEntry,
    InventoryStatus,
    InventoryUpdateRequest,
)
from inventory_service.services import inventory_service
from shared.event_bus import EventPublisher
from shared.security import Principal

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/update", status_code=status.HTTP_204_NO_CONTENT)
async def update_inventory(
    body: InventoryUpdateRequest,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    req_id: str = Depends(request_id),
) -> Response:
    logger.info(
        "Received update_inventory request",
        extra={"request_id": req_id, "book_id": body.book_id, "caller": principal.subject},
    )
    await inventory_service.update_inventory(db, body, publisher, req_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/decrease", status_code=status.HTTP_204_NO_CONTENT)
async def decrease_inventory(
    body: InventoryDecreaseRequest,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    req_id: str = Depends(request_id),
) -> Response:
    logger.info(
        "Received decrease_inventory request",
        extra={"request_id": req_id, "book_id": body.book_id, "caller": principal.subject},
    )
    await inventory_service.decrease_inventory(db, body, req_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/status/{book_id}", response_model=InventoryStatus)
async def get_inventory_status(
    book_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InventoryStatus:
    return await inventory_service.get_inventory_status(db, book_id)


@router.get("/filter", response_model=list[InventoryStatus])
async def filter_books_by_stock(
    min_stock: int = Query(alias="minStock"),
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[InventoryStatus]:
    return await inventory_service.filter_books_by_stock(db, min_stock)


@router.get("/low-stock", response_model=list[InventoryStatus])
async def list_low_or_out_of_stock_books(
    threshold: int = Query(default=settings.low_stock_threshold),
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[InventoryStatus]:
    return await inventory_service.list_low_or_out_of_stock_books(db, threshold)


@router.get("/logs/{book_id}", response_model=list[InventoryLogEntry])
async def get_inventory_log(
    book_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[InventoryLogEntry]:
    return await inventory_service.get_inventory_log(db, book_id)
