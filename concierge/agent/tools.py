"""Tool definitions and executors for the shopping concierge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Sequence, Type

from pydantic import BaseModel, ValidationError
from pydantic_ai.tools import ToolDefinition

from ..catalog.gateway import CatalogError, RemoteToolError, is_invalid_cart_error
from ..sessions.store import load_profile_or_empty
from .dependencies import ToolContext
from .schemas import (
    AddToCartArgs,
    ApplyDiscountCodeArgs,
    GetCartArgs,
    GetProductDetailsArgs,
    LoadTasteProfileArgs,
    RemoveFromCartArgs,
    SaveTasteProfileArgs,
    SearchPoliciesArgs,
    SearchProductsArgs,
    ToolCall,
    ToolResult,
    UpdateCartItemsArgs,
)

logger = logging.getLogger(__name__)

ToolFunction = Callable[[ToolContext, Any], Awaitable[Any]]


@dataclass(frozen=True)
class ConciergeTool:
    """A callable capability exposed to the model."""

    name: str
    description: str
    args_model: Type[BaseModel]
    function: ToolFunction
    mutates_cart: bool = False

    @property
    def definition(self) -> ToolDefinition:
        """Return the JSON-schema tool definition sent to the model."""

        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters_json_schema=self.args_model.model_json_schema(by_alias=True),
        )


async def _search_products(ctx: ToolContext, args: SearchProductsArgs) -> Dict[str, Any]:
    result = await ctx.deps.catalog.search_products(
        args.query, context=args.context, filters=args.filters, after=args.after
    )
    return result.to_payload()


async def _get_product_details(ctx: ToolContext, args: GetProductDetailsArgs) -> Dict[str, Any]:
    product = await ctx.deps.catalog.get_product_details(args.product_id, args.options)
    return product.to_payload()


async def _add_to_cart(ctx: ToolContext, args: AddToCartArgs) -> Dict[str, Any]:
    cart = await ctx.deps.catalog.add_to_cart(args.items, args.cart_id)
    return cart.to_payload()


async def _update_cart_items(ctx: ToolContext, args: UpdateCartItemsArgs) -> Dict[str, Any]:
    cart = await ctx.deps.catalog.update_cart_items(args.cart_id, args.updates)
    return cart.to_payload()


async def _remove_from_cart(ctx: ToolContext, args: RemoveFromCartArgs) -> Dict[str, Any]:
    cart = await ctx.deps.catalog.remove_from_cart(args.cart_id, args.line_ids)
    return cart.to_payload()


async def _apply_discount_code(ctx: ToolContext, args: ApplyDiscountCodeArgs) -> Dict[str, Any]:
    cart = await ctx.deps.catalog.apply_discount_code(args.cart_id, args.codes)
    return cart.to_payload()


async def _get_cart(ctx: ToolContext, args: GetCartArgs) -> Dict[str, Any]:
    cart = await ctx.deps.catalog.get_cart(args.cart_id)
    return cart.to_payload()


async def _search_policies(ctx: ToolContext, args: SearchPoliciesArgs) -> str:
    return await ctx.deps.catalog.search_policies(args.query)


async def _load_taste_profile(ctx: ToolContext, args: LoadTasteProfileArgs) -> Dict[str, Any]:
    lookup = await load_profile_or_empty(ctx.deps.sessions, ctx.deps.session_id)
    return lookup.model_dump(mode="json", exclude_none=True)


async def _save_taste_profile(ctx: ToolContext, args: SaveTasteProfileArgs) -> Dict[str, Any]:
    await ctx.deps.sessions.save_profile(ctx.deps.session_id, args.profile)
    return {"saved": True}


SEARCH_PRODUCTS_TOOL = ConciergeTool(
    name="searchProducts",
    description=(
        "Search the store catalog for products. Supports natural language queries, filters "
        "(price range, product type, size/color), and pagination. Returns products with "
        "availableFilters you can use in follow-up searches. Call this proactively; don't wait "
        "for the user to ask."
    ),
    args_model=SearchProductsArgs,
    function=_search_products,
)

PRODUCT_DETAILS_TOOL = ConciergeTool(
    name="getProductDetails",
    description=(
        "Get full details for a specific product by its productId (from search results). Returns "
        "variants with sizes, colors, availability, and pricing. Optionally select a specific variant."
    ),
    args_model=GetProductDetailsArgs,
    function=_get_product_details,
)

ADD_TO_CART_TOOL = ConciergeTool(
    name="addToCart",
    description=(
        "Add items to the shopping cart. Creates a new cart if no cartId is provided. "
        "Returns the cart with a checkout URL."
    ),
    args_model=AddToCartArgs,
    function=_add_to_cart,
    mutates_cart=True,
)

UPDATE_CART_ITEMS_TOOL = ConciergeTool(
    name="updateCartItems",
    description=(
        "Update quantities of items already in the cart. Set quantity to 0 to remove an item."
    ),
    args_model=UpdateCartItemsArgs,
    function=_update_cart_items,
    mutates_cart=True,
)

REMOVE_FROM_CART_TOOL = ConciergeTool(
    name="removeFromCart",
    description="Remove items from the cart by their line item IDs.",
    args_model=RemoveFromCartArgs,
    function=_remove_from_cart,
    mutates_cart=True,
)

APPLY_DISCOUNT_TOOL = ConciergeTool(
    name="applyDiscountCode",
    description="Apply a discount or promo code to the cart.",
    args_model=ApplyDiscountCodeArgs,
    function=_apply_discount_code,
    mutates_cart=True,
)

GET_CART_TOOL = ConciergeTool(
    name="getCart",
    description=(
        "Get the current state of a shopping cart including items, totals, and checkout URL."
    ),
    args_model=GetCartArgs,
    function=_get_cart,
)

SEARCH_POLICIES_TOOL = ConciergeTool(
    name="searchPolicies",
    description=(
        "Search the store's policies, FAQs, and general info. Use for questions about returns, "
        "shipping, hours, contact info, etc."
    ),
    args_model=SearchPoliciesArgs,
    function=_search_policies,
)

LOAD_TASTE_PROFILE_TOOL = ConciergeTool(
    name="loadTasteProfile",
    description=(
        "Load a returning user's saved taste profile. Call this at the start of every conversation."
    ),
    args_model=LoadTasteProfileArgs,
    function=_load_taste_profile,
)

SAVE_TASTE_PROFILE_TOOL = ConciergeTool(
    name="saveTasteProfile",
    description="Save or update the user's taste profile after learning their preferences.",
    args_model=SaveTasteProfileArgs,
    function=_save_taste_profile,
)


CONCIERGE_TOOLS: tuple[ConciergeTool, ...] = (
    SEARCH_PRODUCTS_TOOL,
    PRODUCT_DETAILS_TOOL,
    ADD_TO_CART_TOOL,
    UPDATE_CART_ITEMS_TOOL,
    REMOVE_FROM_CART_TOOL,
    APPLY_DISCOUNT_TOOL,
    GET_CART_TOOL,
    SEARCH_POLICIES_TOOL,
    LOAD_TASTE_PROFILE_TOOL,
    SAVE_TASTE_PROFILE_TOOL,
)


def build_registry(tools: Sequence[ConciergeTool] = CONCIERGE_TOOLS) -> Dict[str, ConciergeTool]:
    return {tool.name: tool for tool in tools}


def tool_definitions(registry: Mapping[str, ConciergeTool]) -> List[ToolDefinition]:
    return [tool.definition for tool in registry.values()]


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        problems.append(f"{location}: {error.get('msg')}")
    return "Invalid arguments: " + "; ".join(problems)


async def execute_tool_call(
    call: ToolCall, ctx: ToolContext, registry: Mapping[str, ConciergeTool]
) -> ToolResult:
    """Run one tool call, converting every failure into a failed result.

    The model reads the failure and can explain it or try different terms;
    nothing is retried here.
    """

    tool = registry.get(call.name)
    if tool is None:
        return ToolResult(
            call_id=call.id, name=call.name, ok=False, error=f"Unknown tool '{call.name}'"
        )

    try:
        args = tool.args_model.model_validate(call.args)
    except ValidationError as exc:
        return ToolResult(
            call_id=call.id, name=call.name, ok=False, error=_format_validation_error(exc)
        )

    try:
        data = await tool.function(ctx, args)
    except RemoteToolError as exc:
        discard = tool.mutates_cart or tool.name == GET_CART_TOOL.name
        discard = discard and is_invalid_cart_error(exc)
        error = exc.message
        if discard:
            error = (
                f"{exc.message}. The cart id is not valid on {ctx.deps.store}; "
                "discard it and start a new cart."
            )
        return ToolResult(
            call_id=call.id, name=call.name, ok=False, error=error, discard_cart=discard
        )
    except CatalogError as exc:
        logger.warning("Tool %s failed talking to %s: %s", call.name, ctx.deps.store, exc)
        return ToolResult(call_id=call.id, name=call.name, ok=False, error=str(exc))
    except Exception as exc:
        logger.exception("Tool %s raised unexpectedly", call.name)
        return ToolResult(
            call_id=call.id,
            name=call.name,
            ok=False,
            error=str(exc) or exc.__class__.__name__,
        )

    return ToolResult(call_id=call.id, name=call.name, ok=True, data=data)


__all__ = [
    "ADD_TO_CART_TOOL",
    "APPLY_DISCOUNT_TOOL",
    "CONCIERGE_TOOLS",
    "ConciergeTool",
    "GET_CART_TOOL",
    "LOAD_TASTE_PROFILE_TOOL",
    "PRODUCT_DETAILS_TOOL",
    "REMOVE_FROM_CART_TOOL",
    "SAVE_TASTE_PROFILE_TOOL",
    "SEARCH_POLICIES_TOOL",
    "SEARCH_PRODUCTS_TOOL",
    "UPDATE_CART_ITEMS_TOOL",
    "build_registry",
    "execute_tool_call",
    "tool_definitions",
]
