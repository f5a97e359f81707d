"""Pydantic models for tool arguments, planner decisions and turn events."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field

from ..catalog.client import CartItem, CartLineUpdate
from ..catalog.schemas import CatalogModel, SearchFilter


class SearchProductsArgs(CatalogModel):
    """Search the store catalog for products."""

    query: str = Field(..., description="Natural language search query.")
    context: str | None = Field(
        None, description="User taste/preference context to improve results."
    )
    filters: List[SearchFilter] | None = Field(
        None, description="Filters from available_filters in a previous search result."
    )
    after: str | None = Field(
        None,
        description="Pagination cursor (endCursor from previous result) to load more.",
    )


class GetProductDetailsArgs(CatalogModel):
    product_id: str = Field(
        ..., description="Product ID like gid://shopify/Product/123 from search results."
    )
    options: Dict[str, str] | None = Field(
        None,
        description='Variant options to select, e.g. {"Size": "Large", "Color": "Black"}.',
    )


class AddToCartArgs(CatalogModel):
    items: List[CartItem] = Field(..., min_length=1, description="Items to add to cart.")
    cart_id: str | None = Field(
        None, description="Existing cart ID to add to. Omit to create a new cart."
    )


class UpdateCartItemsArgs(CatalogModel):
    cart_id: str = Field(..., description="The cart ID.")
    updates: List[CartLineUpdate] = Field(..., min_length=1, description="Items to update.")


class RemoveFromCartArgs(CatalogModel):
    cart_id: str = Field(..., description="The cart ID.")
    line_ids: List[str] = Field(..., min_length=1, description="Line item IDs to remove.")


class ApplyDiscountCodeArgs(CatalogModel):
    cart_id: str = Field(..., description="The cart ID.")
    codes: List[str] = Field(..., min_length=1, description="Discount/promo codes to apply.")


class GetCartArgs(CatalogModel):
    cart_id: str = Field(..., description="The cart ID to retrieve.")


class SearchPoliciesArgs(CatalogModel):
    query: str = Field(..., description="The policy/FAQ question.")


class LoadTasteProfileArgs(CatalogModel):
    pass


class SaveTasteProfileArgs(CatalogModel):
    profile: Dict[str, Any] = Field(
        ...,
        description=(
            "JSON object with user preferences: brands, styles, budget, colors, occasions, etc."
        ),
    )


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of one tool call as handed back to the model."""

    call_id: str
    name: str
    ok: bool
    data: Any = None
    error: str | None = None
    discard_cart: bool = False

    def model_payload(self) -> Dict[str, Any]:
        """Content placed in the tool-return message for the model."""

        if self.ok:
            return {"ok": True, "result": self.data}
        payload: Dict[str, Any] = {"ok": False, "error": self.error}
        if self.discard_cart:
            payload["discardCart"] = True
        return payload


class ToolCallsDecision(BaseModel):
    """The model wants tools executed before it continues."""

    kind: Literal["tool_calls"] = "tool_calls"
    text: str | None = None
    calls: List[ToolCall] = Field(default_factory=list)


class FinalTextDecision(BaseModel):
    """The model has finished the turn."""

    kind: Literal["final_text"] = "final_text"
    text: str = ""


class TextDelta(BaseModel):
    """A fragment of model text, streamed before the step's decision."""

    kind: Literal["text_delta"] = "text_delta"
    text: str


PlannerDecision = Union[ToolCallsDecision, FinalTextDecision]
PlannerChunk = Union[TextDelta, ToolCallsDecision, FinalTextDecision]


class TextEvent(CatalogModel):
    type: Literal["text"] = "text"
    step: int
    text: str


class ToolCallEvent(CatalogModel):
    type: Literal["tool_call"] = "tool_call"
    step: int
    call_id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(CatalogModel):
    type: Literal["tool_result"] = "tool_result"
    step: int
    call_id: str
    name: str
    ok: bool
    result: Any = None
    error: str | None = None
    discard_cart: bool = False


class StepLimitEvent(CatalogModel):
    """The step bound was hit; ``pending_calls`` were requested but not run."""

    type: Literal["step_limit"] = "step_limit"
    steps: int
    pending_calls: List[str] = Field(default_factory=list)


class ErrorEvent(CatalogModel):
    type: Literal["error"] = "error"
    message: str


class DoneEvent(CatalogModel):
    type: Literal["done"] = "done"
    text: str = ""
    steps: int = 0


TurnEvent = Union[
    TextEvent, ToolCallEvent, ToolResultEvent, StepLimitEvent, ErrorEvent, DoneEvent
]


__all__ = [
    "AddToCartArgs",
    "ApplyDiscountCodeArgs",
    "DoneEvent",
    "ErrorEvent",
    "FinalTextDecision",
    "GetCartArgs",
    "GetProductDetailsArgs",
    "LoadTasteProfileArgs",
    "PlannerChunk",
    "PlannerDecision",
    "RemoveFromCartArgs",
    "SaveTasteProfileArgs",
    "SearchPoliciesArgs",
    "SearchProductsArgs",
    "StepLimitEvent",
    "TextDelta",
    "TextEvent",
    "ToolCall",
    "ToolCallEvent",
    "ToolCallsDecision",
    "ToolResult",
    "ToolResultEvent",
    "TurnEvent",
    "UpdateCartItemsArgs",
]
