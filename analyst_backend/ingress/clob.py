from __future__ import annotations

import asyncio
import logging
from typing import Any

from py_clob_client.client import ClobClient
from py_clob_client.exceptions import PolyApiException

from .gamma import GammaClient

logger = logging.getLogger(__name__)


def _levels(levels: Any) -> list[dict[str, str]]:
    result: list[dict[str, str]] = []
    for level in levels or []:
        if isinstance(level, dict):
            price, size = level.get("price"), level.get("size")
        else:
            price, size = getattr(level, "price", None), getattr(level, "size", None)
        if price is None or size is None:
            continue
        result.append({"price": str(price), "size": str(size)})
    return result


class ClobOrderBookClient:
    """Thin async wrapper over py-clob-client for reading outcome token order books."""

    def __init__(self, host: str, *, chain_id: int | None = None, client: ClobClient | None = None) -> None:
        self._client = client or ClobClient(host, chain_id=chain_id)

    async def fetch_order_book(self, token_id: str) -> dict[str, list[dict[str, str]]]:
        """Return ``{"bids": [...], "asks": [...]}`` price/size levels; empty on API errors."""

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_order_book_sync, token_id)

    def _fetch_order_book_sync(self, token_id: str) -> dict[str, list[dict[str, str]]]:
        try:
            book = self._client.get_order_book(token_id)
        except PolyApiException as exc:
            logger.warning(
                "Failed to fetch CLOB order book (token=%s, status=%s)",
                token_id,
                exc.status_code,
            )
            return {"bids": [], "asks": []}

        if isinstance(book, dict):
            bids, asks = book.get("bids"), book.get("asks")
        else:
            bids, asks = getattr(book, "bids", None), getattr(book, "asks", None)
        return {"bids": _levels(bids), "asks": _levels(asks)}


class PolymarketSource:
    """Market source backed by the Gamma events API and the CLOB order book."""

    def __init__(self, gamma: GammaClient, order_books: ClobOrderBookClient) -> None:
        self._gamma = gamma
        self._order_books = order_books

    async def fetch_event(self, slug: str) -> dict[str, Any]:
        return await self._gamma.fetch_event(slug)

    async def fetch_order_book(self, token_id: str) -> dict[str, Any]:
        return await self._order_books.fetch_order_book(token_id)

    async def close(self) -> None:
        await self._gamma.close()


__all__ = ["ClobOrderBookClient", "PolymarketSource"]
