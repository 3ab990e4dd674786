"""Wire shapes of the book inventory service endpoints this service calls."""

from decimal import Decimal

from shared.events import CamelModel


class BookResponse(CamelModel):
    id: int
    title: str
    author: str
    price: Decimal
    quantity: int


class BookPriceRequest(CamelModel):
    book_ids: list[int]


class BookPriceResponse(CamelModel):
    prices: dict[int, Decimal]
