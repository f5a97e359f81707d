"""Convert heterogeneous storefront payloads into the canonical models.

Storefronts disagree on naming (``checkoutUrl`` vs ``checkout_url``), on
nesting (``priceRange.minVariantPrice`` vs a flat ``price_range``) and on
whether a product carries its handle or only a URL. Every function here is
total: a missing optional field becomes ``None``. Only a payload that is not a
mapping at all raises ``TypeError``.
"""

from __future__ import annotations

from typing import Any, List, Mapping

from .schemas import (
    Cart,
    CartCost,
    CartLine,
    CartMerchandise,
    Money,
    Pagination,
    PriceRange,
    Product,
    ProductImage,
    ProductVariant,
    SearchResult,
    SelectedOption,
)

_PRODUCT_URL_MARKER = "/products/"


def _require_mapping(raw: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise TypeError(f"Cannot normalise {kind} from {type(raw).__name__}")
    return raw


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    """Return the first non-``None`` value among ``keys`` (camelCase listed first)."""

    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _as_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any) -> bool | None:
    if value is None:
        return None
    return bool(value)


def _money(value: Any, currency: str | None = None) -> Money | None:
    """Build a :class:`Money` from an object or a bare amount."""

    if value is None:
        return None
    if isinstance(value, Mapping):
        return Money(
            amount=_as_str(value.get("amount")),
            currency_code=_as_str(_first(value, "currencyCode", "currency_code", "currency"))
            or currency,
        )
    amount = _as_str(value)
    if amount is None:
        return None
    return Money(amount=amount, currency_code=currency)


def extract_handle(url: Any) -> str | None:
    """Return the slug following ``/products/`` in a product URL."""

    if not isinstance(url, str) or _PRODUCT_URL_MARKER not in url:
        return None
    tail = url.split(_PRODUCT_URL_MARKER, 1)[1]
    slug = tail.split("?", 1)[0].split("#", 1)[0].strip("/")
    return slug.split("/", 1)[0] or None


def _price_range(raw: Mapping[str, Any]) -> PriceRange | None:
    nested = raw.get("priceRange")
    if isinstance(nested, Mapping):
        return PriceRange(
            min_variant_price=_money(
                _first(nested, "minVariantPrice", "min_variant_price")
            ),
            max_variant_price=_money(
                _first(nested, "maxVariantPrice", "max_variant_price")
            ),
        )

    flat = raw.get("price_range")
    if isinstance(flat, Mapping):
        currency = _as_str(_first(flat, "currency", "currency_code", "currencyCode"))
        return PriceRange(
            min_variant_price=Money(amount=_as_str(flat.get("min")), currency_code=currency),
            max_variant_price=Money(amount=_as_str(flat.get("max")), currency_code=currency),
        )
    return None


def _images(raw: Mapping[str, Any]) -> List[ProductImage]:
    images = raw.get("images")
    if isinstance(images, list):
        normalised: List[ProductImage] = []
        for image in images:
            if isinstance(image, Mapping):
                normalised.append(
                    ProductImage(
                        url=_as_str(image.get("url")),
                        alt_text=_as_str(_first(image, "altText", "alt_text")),
                    )
                )
            elif isinstance(image, str):
                normalised.append(ProductImage(url=image))
        return normalised

    image_url = _as_str(raw.get("image_url"))
    if image_url:
        return [ProductImage(url=image_url, alt_text=_as_str(raw.get("image_alt_text")))]
    return []


def _selected_options(raw: Any) -> List[SelectedOption] | None:
    if not isinstance(raw, list):
        return None
    return [
        SelectedOption(name=_as_str(option.get("name")), value=_as_str(option.get("value")))
        for option in raw
        if isinstance(option, Mapping)
    ]


def _variant(raw: Mapping[str, Any], fallback_currency: str | None) -> ProductVariant:
    available = _first(raw, "availableForSale", "available")
    currency = _as_str(_first(raw, "currencyCode", "currency")) or fallback_currency
    return ProductVariant(
        id=_as_str(_first(raw, "id", "variant_id")),
        title=_as_str(raw.get("title")),
        available_for_sale=True if available is None else bool(available),
        price=_money(raw.get("price"), currency),
        selected_options=_selected_options(
            _first(raw, "selectedOptions", "selected_options")
        ),
    )


def normalize_product(raw: Any) -> Product:
    """Return the canonical :class:`Product` for a raw catalog entry."""

    data = _require_mapping(raw, "product")

    url = _as_str(data.get("url"))
    handle = _as_str(data.get("handle")) or extract_handle(url)
    price_range = _price_range(data)
    currency = None
    if price_range and price_range.min_variant_price:
        currency = price_range.min_variant_price.currency_code

    variants_raw = data.get("variants")
    variants = None
    if isinstance(variants_raw, list):
        variants = [
            _variant(variant, currency)
            for variant in variants_raw
            if isinstance(variant, Mapping)
        ]

    tags = data.get("tags")
    if isinstance(tags, str):
        tags = [tag.strip() for tag in tags.split(",") if tag.strip()]
    elif isinstance(tags, list):
        tags = [str(tag) for tag in tags]
    else:
        tags = None

    return Product(
        product_id=_as_str(_first(data, "productId", "product_id", "id")),
        title=_as_str(data.get("title")),
        handle=handle,
        url=url,
        description=_as_str(data.get("description")),
        description_html=_as_str(_first(data, "descriptionHtml", "description_html")),
        price_range=price_range,
        images=_images(data),
        variants=variants,
        available_for_sale=_as_bool(_first(data, "availableForSale", "available")),
        product_type=_as_str(_first(data, "productType", "product_type")),
        tags=tags,
    )


def _cart_line(raw: Mapping[str, Any]) -> CartLine:
    merchandise = raw.get("merchandise")
    return CartLine(
        id=_as_str(raw.get("id")),
        quantity=_as_int(raw.get("quantity")),
        merchandise=(
            CartMerchandise.model_validate(dict(merchandise))
            if isinstance(merchandise, Mapping)
            else None
        ),
    )


def normalize_cart(raw: Any, store: str | None = None) -> Cart:
    """Return the canonical :class:`Cart`, unwrapping a nested ``cart`` key."""

    data = _require_mapping(raw, "cart")
    nested = data.get("cart")
    cart = nested if isinstance(nested, Mapping) else data

    cost_raw = cart.get("cost")
    cost = None
    if isinstance(cost_raw, Mapping):
        cost = CartCost(
            total_amount=_money(_first(cost_raw, "totalAmount", "total_amount")),
            subtotal_amount=_money(_first(cost_raw, "subtotalAmount", "subtotal_amount")),
        )

    lines_raw = cart.get("lines")
    lines = [
        _cart_line(line)
        for line in (lines_raw if isinstance(lines_raw, list) else [])
        if isinstance(line, Mapping)
    ]

    return Cart(
        id=_as_str(cart.get("id")),
        store=store,
        checkout_url=_as_str(_first(cart, "checkoutUrl", "checkout_url")),
        lines=lines,
        cost=cost,
        total_quantity=_as_int(_first(cart, "totalQuantity", "total_quantity")) or 0,
    )


def normalize_search_result(raw: Any) -> SearchResult:
    """Return the canonical :class:`SearchResult` for ``search_shop_catalog``."""

    data = _require_mapping(raw, "search result")

    products_raw = data.get("products")
    products = [
        normalize_product(product)
        for product in (products_raw if isinstance(products_raw, list) else [])
        if isinstance(product, Mapping)
    ]

    pagination = None
    pagination_raw = data.get("pagination")
    if isinstance(pagination_raw, Mapping):
        pagination = Pagination(
            has_next_page=bool(_first(pagination_raw, "hasNextPage", "has_next_page")),
            end_cursor=_as_str(_first(pagination_raw, "endCursor", "end_cursor")),
        )

    filters = _first(data, "availableFilters", "available_filters")
    return SearchResult(
        products=products,
        pagination=pagination,
        available_filters=filters if isinstance(filters, list) else None,
    )


__all__ = [
    "extract_handle",
    "normalize_cart",
    "normalize_product",
    "normalize_search_result",
]
