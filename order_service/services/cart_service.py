import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.models.cart import Cart, CartItem
from order_service.schemas.cart import (
    AddToCartRequest,
    CartItemResponse,
    CartResponse,
    RemoveFromCartRequest,
)
from shared.exceptions import ValidationFailureError

logger = logging.getLogger(__name__)


async def find_cart(db: AsyncSession, user_id: int) -> Cart | None:
    result = await db.execute(select(Cart).where(Cart.user_id == user_id))
    return result.scalars().first()


async def add_to_cart(db: AsyncSession, request: AddToCartRequest) -> None:
    if request.quantity <= 0:
        raise ValidationFailureError("Quantity must be positive")

    cart = await find_cart(db, request.user_id)
    if cart is None:
        cart = Cart(user_id=request.user_id, items=[])
        db.add(cart)

    existing = cart.find_item(request.book_id)
    if existing is not None:
        existing.quantity += request.quantity
    else:
        cart.items.append(CartItem(book_id=request.book_id, quantity=request.quantity))

    await db.commit()
    logger.info(
        "Added to cart",
        extra={
            "user_id": request.user_id,
            "book_id": request.book_id,
            "quantity": request.quantity,
        },
    )


async def remove_from_cart(db: AsyncSession, request: RemoveFromCartRequest) -> None:
    cart = await find_cart(db, request.user_id)
    if cart is None:
        return

    item = cart.find_item(request.book_id)
    if item is None:
        return

    cart.items.remove(item)
    await db.commit()
    logger.info(
        "Removed from cart",
        extra={"user_id": request.user_id, "book_id": request.book_id},
    )


async def view_cart(db: AsyncSession, user_id: int) -> CartResponse:
    cart = await find_cart(db, user_id)
    items = [
        CartItemResponse(book_id=item.book_id, quantity=item.quantity)
        for item in (cart.items if cart is not None else [])
    ]
    return CartResponse(user_id=user_id, items=items)


async def clear_cart(db: AsyncSession, user_id: int) -> None:
    await _delete_cart(db, user_id)
    await db.commit()
    logger.info("Cart cleared", extra={"user_id": user_id})


async def _delete_cart(db: AsyncSession, user_id: int) -> None:
    cart_ids = select(Cart.id).where(Cart.user_id == user_id)
    await db.execute(delete(CartItem).where(CartItem.cart_id.in_(cart_ids)))
    await db.execute(delete(Cart).where(Cart.user_id == user_id))
