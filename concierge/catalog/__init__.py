"""Remote storefront catalog access: gateway, normalisation and resolution."""

from __future__ import annotations

from .aggregate import AggregatedSearch, aggregate_search
from .client import CartItem, CartLineUpdate, ShopCatalog
from .gateway import (
    CatalogError,
    CatalogGateway,
    CatalogProtocolError,
    CatalogTransportError,
    RemoteToolError,
    is_invalid_cart_error,
)
from .normalize import normalize_cart, normalize_product, normalize_search_result
from .resolver import StoreResolver
from .schemas import (
    Cart,
    CartRef,
    Product,
    ProductVariant,
    ResolvedProduct,
    SearchFilter,
    SearchResult,
)
from .stores import DEFAULT_STORES, StoreInfo

__all__ = [
    "AggregatedSearch",
    "Cart",
    "CartItem",
    "CartLineUpdate",
    "CartRef",
    "CatalogError",
    "CatalogGateway",
    "CatalogProtocolError",
    "CatalogTransportError",
    "DEFAULT_STORES",
    "Product",
    "ProductVariant",
    "RemoteToolError",
    "ResolvedProduct",
    "SearchFilter",
    "SearchResult",
    "ShopCatalog",
    "StoreInfo",
    "StoreResolver",
    "aggregate_search",
    "is_invalid_cart_error",
    "normalize_cart",
    "normalize_product",
    "normalize_search_result",
]
