"""Durable session-scoped records: taste profiles, conversations, wishlist, insights."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Sequence

from pydantic import Field

from ..catalog.schemas import CatalogModel

DEFAULT_CONVERSATION_TITLE = "New Chat"
_TITLE_LIMIT = 60

TasteProfile = Dict[str, Any]


class ProfileLookup(CatalogModel):
    """Result of loading a taste profile; ``found`` is ``False`` on any miss."""

    found: bool
    profile: TasteProfile | None = None


class ConversationMessage(CatalogModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Literal["user", "assistant"]
    content: str


class ConversationSummary(CatalogModel):
    id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    updated_at: str | None = None


class Conversation(CatalogModel):
    id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    messages: List[ConversationMessage] = Field(default_factory=list)
    updated_at: str | None = None

    def summary(self) -> ConversationSummary:
        return ConversationSummary(id=self.id, title=self.title, updated_at=self.updated_at)


class WishlistItem(CatalogModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    product_handle: str = Field(..., min_length=1)
    product_title: str | None = None
    product_image: str | None = None
    product_price: str | None = None
    store: str | None = None
    created_at: str | None = None


class FeatureScore(CatalogModel):
    name: str
    score: float = Field(..., ge=0.0, le=10.0)


class ProductInsight(CatalogModel):
    """AI-generated synthesis cached per ``(handle, store)``."""

    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    who_is_this_for: str = ""
    features: List[FeatureScore] = Field(default_factory=list)


def utc_now() -> str:
    return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()


def derive_title(
    messages: Sequence[ConversationMessage], explicit: str | None = None
) -> str:
    """Title from the first user message, truncated to 60 characters.

    An explicit non-empty title always wins.
    """

    if explicit and explicit.strip():
        return explicit.strip()
    for message in messages:
        if message.role == "user" and message.content.strip():
            text = " ".join(message.content.split())
            if len(text) <= _TITLE_LIMIT:
                return text
            return text[:_TITLE_LIMIT] + "..."
    return DEFAULT_CONVERSATION_TITLE


__all__ = [
    "Conversation",
    "ConversationMessage",
    "ConversationSummary",
    "DEFAULT_CONVERSATION_TITLE",
    "FeatureScore",
    "ProductInsight",
    "ProfileLookup",
    "TasteProfile",
    "WishlistItem",
    "derive_title",
    "utc_now",
]
