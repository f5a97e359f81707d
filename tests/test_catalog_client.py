"""Cart and search scenarios against the in-memory storefront."""

from __future__ import annotations

import json

import pytest

from conftest import FakeShop
from concierge.catalog import CartItem, CartLineUpdate, RemoteToolError, ShopCatalog, is_invalid_cart_error
from concierge.catalog.schemas import PriceFilter, SearchFilter


@pytest.fixture
def anyio_backend() -> str:
    """Limit AnyIO tests to the asyncio backend."""

    return "asyncio"


_HOODIE = "gid://shopify/ProductVariant/gymshark-crest-hoodie-1"
_SHORTS = "gid://shopify/ProductVariant/gymshark-arrival-shorts-1"


@pytest.mark.anyio
async def test_add_to_cart_without_id_creates_cart(gymshark: ShopCatalog) -> None:
    cart = await gymshark.add_to_cart([CartItem(merchandise_id=_HOODIE, quantity=2)])

    assert cart.id
    assert cart.store == "gymshark.com"
    assert cart.checkout_url.startswith("https://gymshark.com/checkout/")
    assert cart.total_quantity == 2
    assert cart.cost.total_amount.amount == "50.00"


@pytest.mark.anyio
async def test_add_to_existing_cart_keeps_identity(gymshark: ShopCatalog, fake_shop: FakeShop) -> None:
    cart = await gymshark.add_to_cart([CartItem(merchandise_id=_HOODIE, quantity=1)])
    updated = await gymshark.add_to_cart([CartItem(merchandiseId=_SHORTS, quantity=1)], cart.id)

    assert updated.id == cart.id
    assert updated.total_quantity == 2
    assert fake_shop.calls(method="update_cart")[-1] == {
        "add_items": [{"product_variant_id": _SHORTS, "quantity": 1}],
        "cart_id": cart.id,
    }


@pytest.mark.anyio
async def test_line_updates_and_removals(gymshark: ShopCatalog) -> None:
    cart = await gymshark.add_to_cart(
        [CartItem(merchandise_id=_HOODIE, quantity=1), CartItem(merchandise_id=_SHORTS, quantity=3)]
    )
    hoodie_line, shorts_line = cart.line_ids()

    cart = await gymshark.update_cart_items(cart.id, [CartLineUpdate(line_id=shorts_line, quantity=0)])
    assert cart.line_ids() == [hoodie_line]

    cart = await gymshark.remove_from_cart(cart.id, [hoodie_line])
    assert cart.lines == []
    assert cart.total_quantity == 0


@pytest.mark.anyio
async def test_discount_codes_are_sent_through_update_cart(
    gymshark: ShopCatalog, fake_shop: FakeShop
) -> None:
    cart = await gymshark.add_to_cart([CartItem(merchandise_id=_HOODIE, quantity=1)])
    await gymshark.apply_discount_code(cart.id, ["SAVE10"])

    assert fake_shop.calls(method="update_cart")[-1] == {"cart_id": cart.id, "discount_codes": ["SAVE10"]}


@pytest.mark.anyio
async def test_cart_id_is_invalid_on_another_store(gymshark: ShopCatalog) -> None:
    cart = await gymshark.add_to_cart([CartItem(merchandise_id=_HOODIE, quantity=1)])
    ridge = gymshark.for_store("ridgewallet.com")

    with pytest.raises(RemoteToolError) as excinfo:
        await ridge.get_cart(cart.id)

    assert excinfo.value.store == "ridgewallet.com"
    assert is_invalid_cart_error(excinfo.value)
    assert (await gymshark.get_cart(cart.id)).total_quantity == 1


@pytest.mark.anyio
async def test_search_forwards_filters_unmodified(gymshark: ShopCatalog, fake_shop: FakeShop) -> None:
    result = await gymshark.search_products(
        "hoodie",
        filters=[SearchFilter(price=PriceFilter(min=50)), {"productType": "Hoodie", "tag": None}],
    )

    args = fake_shop.calls(method="search_shop_catalog")[-1]
    assert args["context"] == ""
    assert args["filters"] == [{"price": {"min": 50}}, {"productType": "Hoodie"}]
    assert [product.handle for product in result.products] == ["gymshark-crest-hoodie"]
    assert result.available_filters


@pytest.mark.anyio
async def test_product_details_unwrap_product_key(gymshark: ShopCatalog) -> None:
    product = await gymshark.get_product_details("gid://shopify/Product/gymshark-arrival-shorts")

    assert product.title == "Arrival Shorts"
    assert not product.has_variant_choice


@pytest.mark.anyio
async def test_policies_come_back_as_text(gymshark: ShopCatalog) -> None:
    answer = await gymshark.search_policies("returns")

    assert isinstance(answer, str)
    assert json.loads(answer)[0]["answer"].startswith("Returns are accepted")
