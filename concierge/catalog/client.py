"""Typed catalog and cart operations for a single storefront."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .gateway import CatalogGateway
from .normalize import normalize_cart, normalize_product, normalize_search_result
from .schemas import Cart, CartRef, Product, SearchFilter, SearchResult

logger = logging.getLogger(__name__)

SEARCH_CATALOG = "search_shop_catalog"
PRODUCT_DETAILS = "get_product_details"
UPDATE_CART = "update_cart"
GET_CART = "get_cart"
SEARCH_POLICIES = "search_shop_policies_and_faqs"


class CartItem(BaseModel):
    """A variant and quantity to add to a cart."""

    merchandise_id: str = Field(
        ...,
        alias="merchandiseId",
        description="The variant id (gid://shopify/ProductVariant/...) to add.",
    )
    quantity: int = Field(..., ge=1, description="Quantity to add.")

    model_config = ConfigDict(populate_by_name=True)


class CartLineUpdate(BaseModel):
    """New quantity for an existing cart line; ``0`` removes the line."""

    line_id: str = Field(..., alias="lineId", description="The cart line item id.")
    quantity: int = Field(..., ge=0, description="New quantity (0 to remove).")

    model_config = ConfigDict(populate_by_name=True)


def _filters_payload(filters: Sequence[SearchFilter | Mapping[str, Any]] | None) -> list[dict[str, Any]] | None:
    if not filters:
        return None
    payload: list[dict[str, Any]] = []
    for item in filters:
        if isinstance(item, SearchFilter):
            payload.append(item.to_payload())
        else:
            payload.append({key: value for key, value in item.items() if value is not None})
    return payload


class ShopCatalog:
    """Catalog facade bound to one store domain.

    Carts returned from here carry ``store`` so callers can keep the
    ``(store, cart_id)`` pair together.
    """

    def __init__(self, gateway: CatalogGateway, store: str) -> None:
        self._gateway = gateway
        self.store = store

    def for_store(self, store: str) -> "ShopCatalog":
        """Return a catalog bound to another store sharing the same gateway."""

        if store == self.store:
            return self
        return ShopCatalog(self._gateway, store)

    def cart_ref(self, cart_id: str) -> CartRef:
        return CartRef(store=self.store, cart_id=cart_id)

    async def search_products(
        self,
        query: str,
        context: str | None = None,
        filters: Sequence[SearchFilter | Mapping[str, Any]] | None = None,
        after: str | None = None,
        limit: int | None = None,
    ) -> SearchResult:
        """Search the store catalog; filters are forwarded untouched."""

        args: Dict[str, Any] = {"query": query, "context": context or ""}
        filters_payload = _filters_payload(filters)
        if filters_payload:
            args["filters"] = filters_payload
        if after:
            args["after"] = after
        if limit:
            args["limit"] = limit

        raw = await self._gateway.call(self.store, SEARCH_CATALOG, args)
        return normalize_search_result(raw)

    async def get_product_details(
        self, product_id: str, options: Mapping[str, str] | None = None
    ) -> Product:
        """Return full product details, optionally selecting a variant."""

        args: Dict[str, Any] = {"product_id": product_id}
        if options:
            args["options"] = dict(options)
        raw = await self._gateway.call(self.store, PRODUCT_DETAILS, args)
        if isinstance(raw, Mapping) and isinstance(raw.get("product"), Mapping):
            raw = raw["product"]
        return normalize_product(raw)

    async def add_to_cart(
        self, items: Sequence[CartItem], cart_id: str | None = None
    ) -> Cart:
        """Add items, creating a new cart when ``cart_id`` is omitted."""

        args: Dict[str, Any] = {
            "add_items": [
                {"product_variant_id": item.merchandise_id, "quantity": item.quantity}
                for item in items
            ]
        }
        if cart_id:
            args["cart_id"] = cart_id
        return await self._update_cart(args)

    async def update_cart_items(
        self, cart_id: str, updates: Sequence[CartLineUpdate]
    ) -> Cart:
        """Change line quantities; zero-quantity lines are removed."""

        return await self._update_cart(
            {
                "cart_id": cart_id,
                "update_items": [
                    {"id": update.line_id, "quantity": update.quantity}
                    for update in updates
                ],
            }
        )

    async def remove_from_cart(self, cart_id: str, line_ids: Sequence[str]) -> Cart:
        return await self._update_cart(
            {"cart_id": cart_id, "remove_line_ids": list(line_ids)}
        )

    async def apply_discount_code(self, cart_id: str, codes: Sequence[str]) -> Cart:
        return await self._update_cart(
            {"cart_id": cart_id, "discount_codes": list(codes)}
        )

    async def get_cart(self, cart_id: str) -> Cart:
        raw = await self._gateway.call(self.store, GET_CART, {"cart_id": cart_id})
        return normalize_cart(raw, store=self.store)

    async def search_policies(self, query: str) -> str:
        """Answer a store policy or FAQ question as plain text."""

        raw = await self._gateway.call(self.store, SEARCH_POLICIES, {"query": query})
        if isinstance(raw, str):
            return raw
        return json.dumps(raw, ensure_ascii=False)

    async def _update_cart(self, args: Dict[str, Any]) -> Cart:
        raw = await self._gateway.call(self.store, UPDATE_CART, args)
        cart = normalize_cart(raw, store=self.store)
        logger.debug(
            "Cart %s on %s now holds %s items", cart.id, self.store, cart.total_quantity
        )
        return cart


__all__ = [
    "CartItem",
    "CartLineUpdate",
    "GET_CART",
    "PRODUCT_DETAILS",
    "SEARCH_CATALOG",
    "SEARCH_POLICIES",
    "ShopCatalog",
    "UPDATE_CART",
]
