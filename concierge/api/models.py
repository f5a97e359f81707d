"""Pydantic schemas for HTTP API payloads."""
from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from ..catalog.client import CartItem
from ..catalog.schemas import CatalogModel
from ..sessions.schemas import ConversationMessage


class ChatRequest(CatalogModel):
    """Payload accepted by the /chat endpoint; the last message is the new turn."""

    messages: List[ConversationMessage] = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    store: Optional[str] = None


class CartRequest(CatalogModel):
    """Items to add to a new or existing cart."""

    items: List[CartItem] = Field(..., min_length=1)
    cart_id: Optional[str] = None
    store: Optional[str] = None


class ConversationCreateRequest(CatalogModel):
    session_id: Optional[str] = None
    title: Optional[str] = None


class ConversationUpdateRequest(CatalogModel):
    title: Optional[str] = None
    messages: Optional[List[ConversationMessage]] = None


class WishlistAddRequest(CatalogModel):
    session_id: Optional[str] = None
    product_handle: str = Field(..., min_length=1)
    product_title: Optional[str] = None
    product_image: Optional[str] = None
    product_price: Optional[str] = None
    store: Optional[str] = None


__all__ = [
    "CartRequest",
    "ChatRequest",
    "ConversationCreateRequest",
    "ConversationUpdateRequest",
    "WishlistAddRequest",
]
