"""Canonical catalog and cart models shared by the concierge."""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CatalogModel(BaseModel):
    """Base model serialising to the camelCase wire shape."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialise into the camelCase JSON shape, omitting unset values."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Money(CatalogModel):
    """A decimal-string amount with its ISO currency code."""

    amount: str | None = Field(None, description="Decimal amount as a string.")
    currency_code: str | None = Field(None, description="ISO 4217 currency code.")


class PriceRange(CatalogModel):
    """Cheapest and most expensive variant price for a product."""

    min_variant_price: Money | None = None
    max_variant_price: Money | None = None


class ProductImage(CatalogModel):
    url: str | None = None
    alt_text: str | None = None


class SelectedOption(CatalogModel):
    name: str | None = None
    value: str | None = None


class ProductVariant(CatalogModel):
    """A purchasable SKU of a product."""

    id: str | None = Field(None, description="Merchandise identifier used for carts.")
    title: str | None = None
    available_for_sale: bool | None = None
    price: Money | None = None
    selected_options: List[SelectedOption] | None = None


DEFAULT_VARIANT_TITLE = "Default Title"


class Product(CatalogModel):
    """Store-agnostic representation of a catalog product."""

    product_id: str | None = Field(None, description="Remote product identifier.")
    title: str | None = None
    handle: str | None = Field(
        None, description="URL slug; stable identifier when product_id is missing."
    )
    url: str | None = None
    description: str | None = None
    description_html: str | None = None
    price_range: PriceRange | None = None
    images: List[ProductImage] = Field(default_factory=list)
    variants: List[ProductVariant] | None = None
    available_for_sale: bool | None = None
    product_type: str | None = None
    tags: List[str] | None = None

    @property
    def dedupe_key(self) -> str | None:
        """Identity used when merging result pages."""

        return self.product_id or self.handle

    @property
    def is_cart_addressable(self) -> bool:
        """A product without id and handle cannot be added to a cart."""

        return bool(self.product_id or self.handle)

    @property
    def has_variant_choice(self) -> bool:
        """``False`` when the only variant is the placeholder default variant."""

        variants = self.variants or []
        if len(variants) != 1:
            return len(variants) > 1
        return variants[0].title != DEFAULT_VARIANT_TITLE


class CartMerchandise(CatalogModel):
    """Line item merchandise; remote stores vary in what they include."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    title: str | None = None


class CartLine(CatalogModel):
    id: str | None = None
    quantity: int | None = None
    merchandise: CartMerchandise | None = None


class CartCost(CatalogModel):
    total_amount: Money | None = None
    subtotal_amount: Money | None = None


class Cart(CatalogModel):
    """A remote cart. Only valid against the store that issued it."""

    id: str | None = None
    store: str | None = Field(None, description="Domain of the issuing store.")
    checkout_url: str | None = None
    lines: List[CartLine] = Field(default_factory=list)
    cost: CartCost | None = None
    total_quantity: int = 0

    def line_ids(self) -> List[str]:
        return [line.id for line in self.lines if line.id]


class CartRef(CatalogModel):
    """Composite cart identity: a cart id is scoped to one store."""

    store: str
    cart_id: str


class PriceFilter(CatalogModel):
    min: int | float | None = None
    max: int | float | None = None


class VariantOptionFilter(CatalogModel):
    name: str
    value: str


class SearchFilter(CatalogModel):
    """Advisory search refinements forwarded to the remote catalog."""

    available: bool | None = None
    price: PriceFilter | None = Field(None, description="Price range filter.")
    product_type: str | None = None
    tag: str | None = None
    variant_option: VariantOptionFilter | None = Field(
        None, description="Filter by a variant option such as Size or Color."
    )


class Pagination(CatalogModel):
    has_next_page: bool = False
    end_cursor: str | None = Field(
        None, description="Opaque cursor to pass back verbatim for the next page."
    )


class SearchResult(CatalogModel):
    products: List[Product] = Field(default_factory=list)
    pagination: Pagination | None = None
    available_filters: List[Any] | None = None

    @property
    def next_cursor(self) -> str | None:
        """Cursor for the following page, or ``None`` when exhausted."""

        if self.pagination and self.pagination.has_next_page:
            return self.pagination.end_cursor or None
        return None


class ResolvedProduct(CatalogModel):
    product: Product
    store: str


__all__ = [
    "Cart",
    "CartCost",
    "CartLine",
    "CartMerchandise",
    "CartRef",
    "CatalogModel",
    "DEFAULT_VARIANT_TITLE",
    "Money",
    "Pagination",
    "PriceFilter",
    "PriceRange",
    "Product",
    "ProductImage",
    "ProductVariant",
    "ResolvedProduct",
    "SearchFilter",
    "SearchResult",
    "SelectedOption",
    "VariantOptionFilter",
]
