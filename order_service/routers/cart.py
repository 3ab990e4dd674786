import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.database import get_db
from order_service.dependencies import request_id, require_user
from order_service.schemas.cart import AddToCartRequest, CartResponse, RemoveFromCartRequest
from order_service.services import cart_service
from shared.security import Principal

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/add")
async def add_to_cart(
    body: AddToCartRequest,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    req_id: str = Depends(request_id),
) -> Response:
    logger.info(
        "Received add_to_cart request",
        extra={"request_id": req_id, "user_id": body.user_id, "caller": principal.subject},
    )
    await cart_service.add_to_cart(db, body)
    return Response(status_code=200)


@router.post("/remove")
async def remove_from_cart(
    body: RemoveFromCartRequest,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await cart_service.remove_from_cart(db, body)
    return Response(status_code=200)


@router.get("/{user_id}", response_model=CartResponse)
async def view_cart(
    user_id: int,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> CartResponse:
    return await cart_service.view_cart(db, user_id)


@router.delete("/{user_id}")
async def clear_cart(
    user_id: int,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await cart_service.clear_cart(db, user_id)
    return Response(status_code=200)
