"""
Outbound client for the book inventory service's price lookups.

Both lookups run through the ``book-inventory-service`` circuit breaker. Any
transport error, non-2xx answer, unreadable body or timeout counts as a
failure; the fallback answers with a zero price per requested book. Zero is
never a real catalogue price, so callers must treat it as "unresolved".
"""

import asyncio
import logging
from decimal import Decimal

import httpx

from order_service.circuit_breaker import CircuitBreaker, get_circuit_breaker
from order_service.config import settings
from order_service.schemas.inventory import BookPriceRequest, BookPriceResponse, BookResponse
from shared.exceptions import UpstreamUnavailableError
from shared.security import mint_service_token

logger = logging.getLogger(__name__)

INVENTORY_BREAKER_NAME = "book-inventory-service"

ZERO_PRICE = Decimal("0")


class InventoryClient:
    def __init__(self, http: httpx.AsyncClient, breaker: CircuitBreaker | None = None):
        self._http = http
        self._breaker = breaker or get_circuit_breaker(
            INVENTORY_BREAKER_NAME, tracked_exceptions=(UpstreamUnavailableError,)
        )

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def _headers(self, request_id: str | None) -> dict[str, str]:
        token = mint_service_token(
            settings.jwt_secret, settings.service_name, settings.jwt_service_token_ttl
        )
        headers = {"Authorization": f"Bearer {token}"}
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    async def _send(self, request_coro, timeout: float, what: str) -> httpx.Response:
        try:
            response = await asyncio.wait_for(request_coro, timeout=timeout)
            response.raise_for_status()
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailableError(f"{what} timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"{what} failed: {exc}") from exc
        return response

    async def get_price(self, book_id: int, request_id: str | None = None) -> Decimal:
        async def _fetch() -> Decimal:
            logger.debug("Fetching price for book", extra={"book_id": book_id})
            response = await self._send(
                self._http.get(f"/api/books/{book_id}", headers=self._headers(request_id)),
                settings.inventory_price_timeout,
                f"Price lookup for book {book_id}",
            )
            try:
                return BookResponse.model_validate(response.json()).price
            except ValueError as exc:
                raise UpstreamUnavailableError(f"Unreadable book response: {exc}") from exc

        def _fallback(exc: BaseException) -> Decimal:
            logger.warning(
                "Using fallback price for book",
                extra={"book_id": book_id, "error": str(exc)},
            )
            return ZERO_PRICE

        return await self._breaker.call(_fetch, fallback=_fallback)

    async def get_prices(
        self, book_ids: list[int], request_id: str | None = None
    ) -> dict[int, Decimal]:
        if not book_ids:
            return {}
        unique_ids = list(dict.fromkeys(book_ids))

        async def _fetch() -> dict[int, Decimal]:
            logger.debug("Fetching prices for %d books", len(unique_ids))
            body = BookPriceRequest(book_ids=unique_ids).model_dump(mode="json", by_alias=True)
            response = await self._send(
                self._http.post("/api/books/prices", json=body, headers=self._headers(request_id)),
                settings.inventory_batch_price_timeout,
                f"Batch price lookup for {len(unique_ids)} books",
            )
            try:
                return BookPriceResponse.model_validate(response.json()).prices
            except ValueError as exc:
                raise UpstreamUnavailableError(f"Unreadable price response: {exc}") from exc

        def _fallback(exc: BaseException) -> dict[int, Decimal]:
            logger.warning(
                "Using fallback prices for books",
                extra={"book_ids": unique_ids, "error": str(exc)},
            )
            return {book_id: ZERO_PRICE for book_id in unique_ids}

        return await self._breaker.call(_fetch, fallback=_fallback)
