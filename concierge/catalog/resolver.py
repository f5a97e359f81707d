"""Locate a product by handle when its store of origin is unknown."""

from __future__ import annotations

import logging
from typing import List, Sequence

from .client import ShopCatalog
from .gateway import CatalogError
from .schemas import Product, ResolvedProduct, SearchResult
from .stores import StoreInfo, infer_store

logger = logging.getLogger(__name__)

_PRIMARY_QUERY_TOKENS = 6
DEFAULT_PAGE_CEILING = 5


def direct_queries(handle: str) -> List[str]:
    """Search strings tried before scanning: the handle and its first tokens."""

    queries: List[str] = []
    for candidate in (handle, " ".join(handle.split("-")[:_PRIMARY_QUERY_TOKENS])):
        candidate = candidate.strip()
        if candidate and candidate not in queries:
            queries.append(candidate)
    return queries


def _find_handle(result: SearchResult, handle: str) -> Product | None:
    for product in result.products:
        if product.handle == handle:
            return product
    return None


class StoreResolver:
    """Searches stores in priority order for a product with a given handle.

    The remote catalog only offers fuzzy search, so resolution tries a couple
    of direct queries per store and then scans the unfiltered catalog page by
    page up to ``page_ceiling`` pages. The first exact handle match wins.
    """

    def __init__(
        self,
        catalog: ShopCatalog,
        stores: Sequence[StoreInfo],
        *,
        page_ceiling: int = DEFAULT_PAGE_CEILING,
    ) -> None:
        if page_ceiling <= 0:
            raise ValueError("'page_ceiling' must be greater than zero")
        self._catalog = catalog
        self._stores = list(stores)
        self._page_ceiling = page_ceiling

    def search_order(self, handle: str, preferred_store: str | None = None) -> List[str]:
        """Return store domains to try: preferred, inferred, then the rest."""

        order: List[str] = []

        def _push(domain: str | None) -> None:
            if domain and domain not in order:
                order.append(domain)

        _push(preferred_store)
        inferred = infer_store(handle, self._stores)
        _push(inferred.domain if inferred else None)
        for store in self._stores:
            _push(store.domain)
        return order

    async def resolve_product_by_handle(
        self, handle: str, preferred_store: str | None = None
    ) -> ResolvedProduct | None:
        handle = handle.strip()
        if not handle:
            return None

        for store in self.search_order(handle, preferred_store):
            try:
                product = await self._find_in_store(store, handle)
            except CatalogError:
                logger.warning(
                    "Catalog lookup for %r failed on %s; trying next store",
                    handle,
                    store,
                    exc_info=True,
                )
                continue
            if product is not None:
                return ResolvedProduct(product=product, store=store)

        logger.info("Handle %r not found in any of %d stores", handle, len(self._stores))
        return None

    async def _find_in_store(self, store: str, handle: str) -> Product | None:
        catalog = self._catalog.for_store(store)

        for query in direct_queries(handle):
            match = _find_handle(await catalog.search_products(query), handle)
            if match is not None:
                return match

        cursor: str | None = None
        for _ in range(self._page_ceiling):
            result = await catalog.search_products("", after=cursor)
            match = _find_handle(result, handle)
            if match is not None:
                return match
            cursor = result.next_cursor
            if cursor is None:
                break
        return None


__all__ = ["DEFAULT_PAGE_CEILING", "StoreResolver", "direct_queries"]
