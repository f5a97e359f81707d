"""Shared fixtures: an in-memory storefront speaking the MCP tool protocol."""

from __future__ import annotations

import itertools
import json
from typing import Any, Dict, List, Tuple

import httpx
import pytest

from concierge.catalog import CatalogGateway, ShopCatalog


class _ToolFailure(Exception):
    pass


def make_product(
    handle: str,
    title: str,
    *,
    price: str = "25.00",
    currency: str = "USD",
    product_id: str | None = None,
    variants: List[Dict[str, Any]] | None = None,
) -> Dict[str, Any]:
    """Raw camelCase product as a storefront returns it from search."""

    return {
        "productId": product_id or f"gid://shopify/Product/{handle}",
        "title": title,
        "handle": handle,
        "url": f"https://example.test/products/{handle}",
        "description": f"{title} description",
        "priceRange": {
            "minVariantPrice": {"amount": price, "currencyCode": currency},
            "maxVariantPrice": {"amount": price, "currencyCode": currency},
        },
        "images": [{"url": f"https://cdn.example.test/{handle}.png", "altText": title}],
        "variants": variants
        or [
            {
                "id": f"gid://shopify/ProductVariant/{handle}-1",
                "title": "Default Title",
                "availableForSale": True,
                "price": {"amount": price, "currencyCode": currency},
            }
        ],
        "availableForSale": True,
        "productType": "Gear",
        "tags": ["gear"],
    }


class FakeShop:
    """Storefronts keyed by domain, each with its own catalog and carts."""

    def __init__(
        self, catalogs: Dict[str, List[Dict[str, Any]]] | None = None, *, page_size: int = 2
    ) -> None:
        self.catalogs = catalogs or {}
        self.page_size = page_size
        self.carts: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.errors: Dict[Tuple[str, str], str] = {}
        self.requests: List[Tuple[str, str, Dict[str, Any]]] = []
        self._ids = itertools.count(1)

    def calls(self, store: str | None = None, method: str | None = None) -> List[Dict[str, Any]]:
        return [
            args
            for host, name, args in self.requests
            if (store is None or host == store) and (method is None or name == method)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        store = request.url.host
        body = json.loads(request.content)
        name = body["params"]["name"]
        args = body["params"]["arguments"]
        self.requests.append((store, name, args))

        try:
            failure = self.errors.get((store, name))
            if failure:
                raise _ToolFailure(failure)
            result = getattr(self, f"_{name}")(store, args)
        except _ToolFailure as exc:
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": body["id"],
                    "error": {"code": -32000, "message": str(exc)},
                },
            )
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": body["id"],
                "result": {"content": [{"type": "text", "text": json.dumps(result)}]},
            },
        )

    def _search_shop_catalog(self, store: str, args: Dict[str, Any]) -> Dict[str, Any]:
        products = self.catalogs.get(store, [])
        words = args.get("query", "").lower().replace("-", " ").split()
        if words:
            products = [
                product
                for product in products
                if all(
                    word in f"{product['title']} {product.get('handle', '')}".lower().replace("-", " ")
                    for word in words
                )
            ]
        offset = int(args.get("after") or 0)
        page = products[offset : offset + self.page_size]
        following = offset + self.page_size
        has_next = following < len(products)
        return {
            "products": page,
            "pagination": {
                "hasNextPage": has_next,
                "endCursor": str(following) if has_next else None,
            },
            "availableFilters": [{"label": "Price", "values": []}],
        }

    def _get_product_details(self, store: str, args: Dict[str, Any]) -> Dict[str, Any]:
        for product in self.catalogs.get(store, []):
            if product["productId"] == args["product_id"]:
                return {"product": product}
        raise _ToolFailure("Product not found")

    def _cart(self, store: str, cart_id: str) -> Dict[str, Any]:
        cart = self.carts.get(store, {}).get(cart_id)
        if cart is None:
            raise _ToolFailure(f"Cart not found: {cart_id}")
        return cart

    def _update_cart(self, store: str, args: Dict[str, Any]) -> Dict[str, Any]:
        cart_id = args.get("cart_id")
        if cart_id:
            cart = self._cart(store, cart_id)
        else:
            cart_id = f"gid://shopify/Cart/{store}-{next(self._ids)}"
            cart = {"id": cart_id, "lines": [], "discount_codes": []}
            self.carts.setdefault(store, {})[cart_id] = cart

        for item in args.get("add_items", []):
            cart["lines"].append(
                {
                    "id": f"gid://shopify/CartLine/{next(self._ids)}",
                    "quantity": item["quantity"],
                    "merchandise": {"id": item["product_variant_id"]},
                }
            )
        for update in args.get("update_items", []):
            for line in cart["lines"]:
                if line["id"] == update["id"]:
                    line["quantity"] = update["quantity"]
        removed = set(args.get("remove_line_ids", []))
        cart["lines"] = [
            line for line in cart["lines"] if line["quantity"] > 0 and line["id"] not in removed
        ]
        cart["discount_codes"].extend(args.get("discount_codes", []))

        quantity = sum(line["quantity"] for line in cart["lines"])
        return {
            "cart": {
                "id": cart_id,
                "checkout_url": f"https://{store}/checkout/{cart_id.rsplit('/', 1)[-1]}",
                "lines": cart["lines"],
                "cost": {"total_amount": {"amount": f"{quantity * 25}.00", "currency_code": "USD"}},
                "total_quantity": quantity,
            }
        }

    def _get_cart(self, store: str, args: Dict[str, Any]) -> Dict[str, Any]:
        cart = self._cart(store, args["cart_id"])
        return {
            "id": cart["id"],
            "checkoutUrl": f"https://{store}/checkout",
            "lines": cart["lines"],
            "totalQuantity": sum(line["quantity"] for line in cart["lines"]),
        }

    def _search_shop_policies_and_faqs(self, store: str, args: Dict[str, Any]) -> Any:
        return [{"question": args["query"], "answer": "Returns are accepted within 30 days."}]


@pytest.fixture
def fake_shop() -> FakeShop:
    return FakeShop(
        {
            "gymshark.com": [
                make_product("gymshark-crest-hoodie", "Crest Hoodie", price="45.00"),
                make_product("gymshark-arrival-shorts", "Arrival Shorts", price="30.00"),
                make_product("gymshark-vital-leggings", "Vital Leggings", price="50.00"),
            ],
            "ridgewallet.com": [
                make_product("ridge-wallet-aluminum", "Aluminum Wallet", price="95.00"),
            ],
            "deathwishcoffee.com": [
                make_product("death-wish-ground-coffee", "Ground Coffee", price="19.99"),
            ],
        }
    )


@pytest.fixture
def gateway(fake_shop: FakeShop) -> CatalogGateway:
    return CatalogGateway(transport=httpx.MockTransport(fake_shop.handler))


@pytest.fixture
def gymshark(gateway: CatalogGateway) -> ShopCatalog:
    return ShopCatalog(gateway, "gymshark.com")
