"""Session-scoped persistence consumed by the concierge."""

from __future__ import annotations

from .schemas import (
    DEFAULT_CONVERSATION_TITLE,
    Conversation,
    ConversationMessage,
    ConversationSummary,
    ProductInsight,
    ProfileLookup,
    TasteProfile,
    WishlistItem,
    derive_title,
)
from .store import (
    HttpSessionStore,
    InMemorySessionStore,
    SessionStore,
    SessionStoreError,
    load_profile_or_empty,
)

__all__ = [
    "DEFAULT_CONVERSATION_TITLE",
    "Conversation",
    "ConversationMessage",
    "ConversationSummary",
    "HttpSessionStore",
    "InMemorySessionStore",
    "ProductInsight",
    "ProfileLookup",
    "SessionStore",
    "SessionStoreError",
    "TasteProfile",
    "WishlistItem",
    "derive_title",
    "load_profile_or_empty",
]
