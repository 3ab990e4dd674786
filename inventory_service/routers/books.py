from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_service.database import get_db
from inventory_service.dependencies import require_admin, require_authenticated
from inventory_service.schemas.book import BookPriceRequest, BookPriceResponse, BookResponse
from inventory_service.services import book_service
from shared.security import Principal

router = APIRouter()


@router.post("/prices", response_model=BookPriceResponse)
async def get_book_prices(
    body: BookPriceRequest,
    principal: Principal = Depends(require_authenticated),
    db: AsyncSession = Depends(get_db),
) -> BookPriceResponse:
    prices = await book_service.get_book_prices(db, body.book_ids)
    return BookPriceResponse(prices=prices)


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(
    book_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> BookResponse:
    return await book_service.get_book(db, book_id)
