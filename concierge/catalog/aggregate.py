"""Multi-page, deduplicated product search used by the storefront listing."""

from __future__ import annotations

from typing import List

from pydantic import Field

from .client import ShopCatalog
from .schemas import CatalogModel, Product

MIN_LIMIT, MAX_LIMIT, DEFAULT_LIMIT = 1, 60, 24
MIN_PAGES, MAX_PAGES, DEFAULT_PAGES = 1, 6, 3


def clamp(value: int | None, low: int, high: int, default: int) -> int:
    """Clamp ``value`` into ``[low, high]``; ``None`` yields ``default``."""

    if value is None:
        return default
    return max(low, min(high, value))


class AggregatedSearch(CatalogModel):
    products: List[Product] = Field(default_factory=list)
    pages_fetched: int = 0
    has_more: bool = False
    end_cursor: str | None = None


async def aggregate_search(
    catalog: ShopCatalog,
    query: str,
    *,
    limit: int | None = None,
    pages: int | None = None,
) -> AggregatedSearch:
    """Fetch up to ``pages`` result pages and merge them without duplicates.

    Products are keyed by ``productId`` (falling back to ``handle``); products
    with neither are kept as-is.
    """

    limit = clamp(limit, MIN_LIMIT, MAX_LIMIT, DEFAULT_LIMIT)
    pages = clamp(pages, MIN_PAGES, MAX_PAGES, DEFAULT_PAGES)

    merged: List[Product] = []
    seen: set[str] = set()
    cursor: str | None = None
    fetched = 0

    while fetched < pages and len(merged) < limit:
        result = await catalog.search_products(query, after=cursor)
        fetched += 1
        for product in result.products:
            key = product.dedupe_key
            if key is not None:
                if key in seen:
                    continue
                seen.add(key)
            merged.append(product)
        cursor = result.next_cursor
        if cursor is None:
            break

    return AggregatedSearch(
        products=merged[:limit],
        pages_fetched=fetched,
        has_more=cursor is not None,
        end_cursor=cursor,
    )


__all__ = [
    "AggregatedSearch",
    "DEFAULT_LIMIT",
    "DEFAULT_PAGES",
    "MAX_LIMIT",
    "MAX_PAGES",
    "aggregate_search",
    "clamp",
]
