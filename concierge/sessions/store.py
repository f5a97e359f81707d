"""Session store interface and its HTTP and in-memory implementations."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Mapping, Protocol, Sequence
from urllib.parse import quote

import httpx
from cachetools import TTLCache

from .schemas import (
    DEFAULT_CONVERSATION_TITLE,
    Conversation,
    ConversationMessage,
    ConversationSummary,
    ProductInsight,
    ProfileLookup,
    TasteProfile,
    WishlistItem,
    utc_now,
)

logger = logging.getLogger(__name__)

INSIGHT_TTL_SECONDS = 24 * 60 * 60


class SessionStoreError(Exception):
    """The session backend could not be reached or rejected the request."""


class SessionStore(Protocol):
    """Key-value persistence for everything scoped to an anonymous session."""

    async def load_profile(self, session_id: str) -> TasteProfile | None: ...

    async def save_profile(self, session_id: str, profile: TasteProfile) -> None: ...

    async def list_conversations(self, session_id: str) -> List[ConversationSummary]: ...

    async def create_conversation(self, session_id: str, title: str | None = None) -> Conversation: ...

    async def get_conversation(self, session_id: str, conversation_id: str) -> Conversation | None: ...

    async def update_conversation(
        self,
        session_id: str,
        conversation_id: str,
        messages: Sequence[ConversationMessage] | None = None,
        title: str | None = None,
    ) -> None: ...

    async def list_wishlist(self, session_id: str) -> List[WishlistItem]: ...

    async def add_wishlist_item(self, session_id: str, item: WishlistItem) -> WishlistItem: ...

    async def remove_wishlist_item(self, session_id: str, item_id: str) -> None: ...

    async def get_insight(self, handle: str, store: str | None) -> ProductInsight | None: ...

    async def save_insight(self, handle: str, store: str | None, insight: ProductInsight) -> None: ...


async def load_profile_or_empty(store: SessionStore, session_id: str) -> ProfileLookup:
    """Best-effort profile load: any failure reads as "no profile"."""

    try:
        profile = await store.load_profile(session_id)
    except Exception:
        logger.warning("Loading taste profile for %s failed", session_id, exc_info=True)
        return ProfileLookup(found=False)
    if profile is None:
        return ProfileLookup(found=False)
    return ProfileLookup(found=True, profile=profile)


class InMemorySessionStore:
    """Process-local store used for development and tests."""

    def __init__(self, *, insight_ttl_seconds: float = INSIGHT_TTL_SECONDS) -> None:
        self._profiles: Dict[str, TasteProfile] = {}
        self._conversations: Dict[str, Dict[str, Conversation]] = {}
        self._wishlists: Dict[str, Dict[str, WishlistItem]] = {}
        self._insights: TTLCache[tuple[str, str], ProductInsight] = TTLCache(
            maxsize=4096, ttl=insight_ttl_seconds
        )
        self._lock = asyncio.Lock()

    async def load_profile(self, session_id: str) -> TasteProfile | None:
        async with self._lock:
            profile = self._profiles.get(session_id)
            return dict(profile) if profile is not None else None

    async def save_profile(self, session_id: str, profile: TasteProfile) -> None:
        async with self._lock:
            self._profiles[session_id] = dict(profile)

    async def list_conversations(self, session_id: str) -> List[ConversationSummary]:
        async with self._lock:
            conversations = list(self._conversations.get(session_id, {}).values())
        conversations.sort(key=lambda item: item.updated_at or "", reverse=True)
        return [conversation.summary() for conversation in conversations]

    async def create_conversation(self, session_id: str, title: str | None = None) -> Conversation:
        conversation = Conversation(
            id=str(uuid.uuid4()),
            title=title or DEFAULT_CONVERSATION_TITLE,
            updated_at=utc_now(),
        )
        async with self._lock:
            self._conversations.setdefault(session_id, {})[conversation.id] = conversation
        return conversation.model_copy(deep=True)

    async def get_conversation(self, session_id: str, conversation_id: str) -> Conversation | None:
        async with self._lock:
            conversation = self._conversations.get(session_id, {}).get(conversation_id)
            return conversation.model_copy(deep=True) if conversation else None

    async def update_conversation(
        self,
        session_id: str,
        conversation_id: str,
        messages: Sequence[ConversationMessage] | None = None,
        title: str | None = None,
    ) -> None:
        async with self._lock:
            conversations = self._conversations.setdefault(session_id, {})
            conversation = conversations.get(conversation_id) or Conversation(
                id=conversation_id
            )
            if title:
                conversation.title = title
            if messages is not None:
                conversation.messages = [message.model_copy() for message in messages]
            conversation.updated_at = utc_now()
            conversations[conversation_id] = conversation

    async def list_wishlist(self, session_id: str) -> List[WishlistItem]:
        async with self._lock:
            items = list(self._wishlists.get(session_id, {}).values())
        items.sort(key=lambda item: item.created_at or "", reverse=True)
        return items

    async def add_wishlist_item(self, session_id: str, item: WishlistItem) -> WishlistItem:
        async with self._lock:
            wishlist = self._wishlists.setdefault(session_id, {})
            for existing in wishlist.values():
                if existing.product_handle == item.product_handle:
                    return existing
            stored = item.model_copy(update={"created_at": item.created_at or utc_now()})
            wishlist[stored.id] = stored
            return stored

    async def remove_wishlist_item(self, session_id: str, item_id: str) -> None:
        async with self._lock:
            self._wishlists.get(session_id, {}).pop(item_id, None)

    async def get_insight(self, handle: str, store: str | None) -> ProductInsight | None:
        async with self._lock:
            return self._insights.get((handle, store or ""))

    async def save_insight(self, handle: str, store: str | None, insight: ProductInsight) -> None:
        async with self._lock:
            self._insights[(handle, store or "")] = insight


def _segment(value: str) -> str:
    return quote(value, safe="")


class HttpSessionStore:
    """Client for the external session backend service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
        allow_missing: bool = False,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise SessionStoreError(f"{method} {path} failed: {exc}") from exc

        if allow_missing and response.status_code == 404:
            return None
        if response.is_error:
            raise SessionStoreError(
                f"{method} {path} returned HTTP {response.status_code}"
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise SessionStoreError(f"{method} {path} returned non-JSON body") from exc

    async def load_profile(self, session_id: str) -> TasteProfile | None:
        payload = await self._request(
            "GET", f"/api/profiles/{_segment(session_id)}", allow_missing=True
        )
        if not isinstance(payload, dict):
            return None
        profile = payload.get("profile")
        return profile if isinstance(profile, dict) else None

    async def save_profile(self, session_id: str, profile: TasteProfile) -> None:
        await self._request(
            "POST", f"/api/profiles/{_segment(session_id)}", json={"profile": profile}
        )

    async def list_conversations(self, session_id: str) -> List[ConversationSummary]:
        payload = await self._request("GET", f"/api/conversations/{_segment(session_id)}")
        entries = payload.get("conversations", []) if isinstance(payload, dict) else []
        return [ConversationSummary.model_validate(entry) for entry in entries]

    async def create_conversation(self, session_id: str, title: str | None = None) -> Conversation:
        payload = await self._request(
            "POST",
            f"/api/conversations/{_segment(session_id)}",
            json={"title": title or DEFAULT_CONVERSATION_TITLE},
        )
        return Conversation.model_validate(payload)

    async def get_conversation(self, session_id: str, conversation_id: str) -> Conversation | None:
        payload = await self._request(
            "GET",
            f"/api/conversations/{_segment(session_id)}/{_segment(conversation_id)}",
            allow_missing=True,
        )
        if payload is None:
            return None
        return Conversation.model_validate(payload)

    async def update_conversation(
        self,
        session_id: str,
        conversation_id: str,
        messages: Sequence[ConversationMessage] | None = None,
        title: str | None = None,
    ) -> None:
        body: Dict[str, Any] = {}
        if title:
            body["title"] = title
        if messages is not None:
            body["messages"] = [message.to_payload() for message in messages]
        await self._request(
            "PUT",
            f"/api/conversations/{_segment(session_id)}/{_segment(conversation_id)}",
            json=body,
        )

    async def list_wishlist(self, session_id: str) -> List[WishlistItem]:
        payload = await self._request("GET", f"/api/wishlist/{_segment(session_id)}")
        entries = payload.get("items", []) if isinstance(payload, dict) else []
        return [WishlistItem.model_validate(entry) for entry in entries]

    async def add_wishlist_item(self, session_id: str, item: WishlistItem) -> WishlistItem:
        payload = await self._request(
            "POST",
            f"/api/wishlist/{_segment(session_id)}",
            json=item.model_dump(
                mode="json", exclude={"id", "created_at"}, exclude_none=True
            ),
        )
        # A duplicate handle is ignored by the backend, which still answers
        # with a fresh id; the stored row is the one to hand back.
        try:
            stored = await self.list_wishlist(session_id)
        except SessionStoreError:
            logger.warning("Re-reading wishlist for %s failed", session_id, exc_info=True)
            stored = []
        for existing in stored:
            if existing.product_handle == item.product_handle:
                return existing
        if isinstance(payload, dict) and payload.get("id"):
            return item.model_copy(update={"id": str(payload["id"])})
        return item

    async def remove_wishlist_item(self, session_id: str, item_id: str) -> None:
        await self._request(
            "DELETE", f"/api/wishlist/{_segment(session_id)}/{_segment(item_id)}"
        )

    async def get_insight(self, handle: str, store: str | None) -> ProductInsight | None:
        payload = await self._request(
            "GET",
            f"/api/insights/{_segment(handle)}",
            params={"store": store} if store else None,
            allow_missing=True,
        )
        if not payload:
            return None
        return ProductInsight.model_validate(payload)

    async def save_insight(self, handle: str, store: str | None, insight: ProductInsight) -> None:
        await self._request(
            "POST",
            f"/api/insights/{_segment(handle)}",
            params={"store": store} if store else None,
            json={"insight": insight.to_payload()},
        )

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "HttpSessionStore",
    "INSIGHT_TTL_SECONDS",
    "InMemorySessionStore",
    "SessionStore",
    "SessionStoreError",
    "load_profile_or_empty",
]
