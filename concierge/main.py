"""Main FastAPI application for the shopping concierge."""

import json
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, List, Optional

import anyio
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse

from .agent import AgentDependencies, InsightUnavailableError, generate_insight
from .agent.factory import get_insight_agent, get_orchestrator
from .agent.logging import _ensure_logfire
from .agent.schemas import DoneEvent
from .api.models import (
    CartRequest,
    ChatRequest,
    ConversationCreateRequest,
    ConversationUpdateRequest,
    WishlistAddRequest,
)
from .catalog import (
    CatalogError,
    CatalogGateway,
    RemoteToolError,
    ShopCatalog,
    StoreResolver,
    aggregate_search,
    is_invalid_cart_error,
)
from .catalog.schemas import Product
from .config import settings
from .logging import TurnLogger
from .sessions import (
    DEFAULT_CONVERSATION_TITLE,
    ConversationMessage,
    HttpSessionStore,
    InMemorySessionStore,
    SessionStore,
    SessionStoreError,
    WishlistItem,
    derive_title,
)


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Close pooled HTTP connections to stores and the session backend on exit."""

    yield
    await get_gateway().aclose()
    store = get_session_store()
    if isinstance(store, HttpSessionStore):
        await store.aclose()


app = FastAPI(title="Shopping Concierge API", version="0.1.0", lifespan=_lifespan)


logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_gateway() -> CatalogGateway:
    _ensure_logfire()
    return CatalogGateway(timeout=settings.catalog_timeout_seconds)


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    """Return the external session backend, or an in-process store without one."""

    if settings.session_backend_url:
        return HttpSessionStore(settings.session_backend_url)
    logger.info("SESSION_BACKEND_URL is not set; sessions are kept in memory")
    return InMemorySessionStore()


@lru_cache(maxsize=1)
def get_turn_logger() -> Optional[TurnLogger]:
    if settings.turn_log_path is None:
        return None
    return TurnLogger(settings.turn_log_path)


def _catalog(store: Optional[str]) -> ShopCatalog:
    return ShopCatalog(get_gateway(), settings.resolve_store(store))


def _require_session(session_id: Optional[str]) -> str:
    if not session_id or not session_id.strip():
        raise HTTPException(status_code=400, detail="sessionId required")
    return session_id.strip()


def _bad_gateway(exc: Exception) -> HTTPException:
    return HTTPException(status_code=502, detail=str(exc) or "Upstream request failed")


def _cart_error(exc: CatalogError) -> HTTPException:
    """Invalid carts map to 404 and tell the client to drop its cart id."""

    if isinstance(exc, RemoteToolError) and is_invalid_cart_error(exc):
        return HTTPException(
            status_code=404, detail={"error": exc.message, "discardCart": True}
        )
    return _bad_gateway(exc)


async def _save_transcript(
    session_id: str,
    conversation_id: str,
    messages: List[ConversationMessage],
    final_text: str,
) -> None:
    """Persist the conversation after a turn; failures are logged and dropped."""

    transcript = list(messages)
    if final_text:
        transcript.append(ConversationMessage(role="assistant", content=final_text))
    sessions = get_session_store()
    try:
        existing = await sessions.get_conversation(session_id, conversation_id)
        # Only untitled conversations take their title from the transcript.
        title = None
        if existing is None or existing.title == DEFAULT_CONVERSATION_TITLE:
            title = derive_title(transcript)
        await sessions.update_conversation(
            session_id,
            conversation_id,
            messages=transcript,
            title=title,
        )
    except Exception:
        logger.exception("Failed to save conversation %s for %s", conversation_id, session_id)


async def _log_turn(**kwargs: Any) -> None:
    turn_logger = get_turn_logger()
    if turn_logger is None:
        return
    try:
        await turn_logger.log_turn(**kwargs)
    except Exception:  # pragma: no cover - exercised in integration tests
        logger.exception("Failed to write chat turn log")


@app.post("/chat")
async def chat_endpoint(
    request: ChatRequest,
    session_id: Optional[str] = Query(None, alias="sessionId"),
) -> StreamingResponse:
    """Run one chat turn and stream its events as newline-delimited JSON."""

    session_id = _require_session(session_id)
    latest = request.messages[-1]
    if latest.role != "user" or not latest.content.strip():
        raise HTTPException(
            status_code=400, detail="The last message must be a non-empty user message."
        )

    catalog = _catalog(request.store)
    deps = AgentDependencies(
        session_id=session_id, catalog=catalog, sessions=get_session_store()
    )
    orchestrator = get_orchestrator()
    history = request.messages[:-1]

    async def _stream() -> AsyncIterator[str]:
        recorded: List[Dict[str, Any]] = []
        final_text = ""
        async for event in orchestrator.run_turn(history, latest.content, deps):
            payload = event.to_payload()
            recorded.append(payload)
            if isinstance(event, DoneEvent):
                final_text = event.text
            yield json.dumps(payload, ensure_ascii=False) + "\n"

        if request.conversation_id:
            await _save_transcript(
                session_id, request.conversation_id, request.messages, final_text
            )
        await _log_turn(
            session_id=session_id,
            store=catalog.store,
            user_message=latest.content,
            events=recorded,
            conversation_id=request.conversation_id,
        )

    return StreamingResponse(_stream(), media_type="application/x-ndjson")


@app.get("/api/products")
async def list_products(
    q: str = Query(""),
    store: Optional[str] = None,
    limit: Optional[int] = None,
    pages: Optional[int] = None,
) -> Dict[str, Any]:
    """Aggregate several result pages into one deduplicated listing."""

    catalog = _catalog(store)
    try:
        result = await aggregate_search(catalog, q, limit=limit, pages=pages)
    except CatalogError as exc:
        raise _bad_gateway(exc) from exc
    return {**result.to_payload(), "store": catalog.store}


@app.get("/api/cart")
async def get_cart(
    cart_id: Optional[str] = Query(None, alias="cartId"),
    store: Optional[str] = None,
) -> Dict[str, Any]:
    if not cart_id:
        raise HTTPException(status_code=400, detail="cartId required")
    try:
        cart = await _catalog(store).get_cart(cart_id)
    except CatalogError as exc:
        raise _cart_error(exc) from exc
    return cart.to_payload()


@app.post("/api/cart")
async def add_to_cart(request: CartRequest) -> Dict[str, Any]:
    """Add items to the given cart, creating one when no ``cartId`` is sent."""

    try:
        cart = await _catalog(request.store).add_to_cart(request.items, request.cart_id)
    except CatalogError as exc:
        raise _cart_error(exc) from exc
    return cart.to_payload()


async def _resolve_product(handle: str, store: Optional[str]):
    resolver = StoreResolver(
        _catalog(None), settings.stores, page_ceiling=settings.resolver_page_ceiling
    )
    preferred = settings.resolve_store(store) if store else None
    resolved = await resolver.resolve_product_by_handle(handle, preferred)
    if resolved is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return resolved


@app.get("/api/products/{handle}/details")
async def product_details(handle: str, store: Optional[str] = None) -> Dict[str, Any]:
    """Find a product by handle across the known stores."""

    resolved = await _resolve_product(handle, store)
    return resolved.to_payload()


@app.get("/api/products/{handle}/analysis")
async def get_product_analysis(handle: str, store: Optional[str] = None) -> Dict[str, Any]:
    """Return a previously generated analysis; never calls the model."""

    try:
        insight = await get_session_store().get_insight(handle, settings.resolve_store(store))
    except SessionStoreError:
        logger.warning("Insight cache lookup failed for %s", handle, exc_info=True)
        insight = None
    if insight is None:
        raise HTTPException(status_code=404, detail="No cached analysis")
    return insight.to_payload()


@app.post("/api/products/{handle}/analysis")
async def create_product_analysis(handle: str, store: Optional[str] = None) -> Dict[str, Any]:
    """Generate (or reuse) the analysis of a product and cache it."""

    cache_store = settings.resolve_store(store)
    sessions = get_session_store()
    try:
        cached = await sessions.get_insight(handle, cache_store)
    except SessionStoreError:
        logger.warning("Insight cache lookup failed for %s", handle, exc_info=True)
        cached = None
    if cached is not None:
        return cached.to_payload()

    resolved = await _resolve_product(handle, store)
    product: Product = resolved.product
    try:
        with anyio.fail_after(settings.analysis_timeout_seconds):
            insight = await generate_insight(product, get_insight_agent())
    except TimeoutError as exc:
        raise HTTPException(status_code=504, detail="Analysis timed out") from exc
    except InsightUnavailableError as exc:
        logger.warning("Discarding malformed analysis for %s: %s", handle, exc)
        raise HTTPException(status_code=502, detail="Analysis unavailable") from exc
    except Exception as exc:
        logger.exception("Analysis generation failed for %s", handle)
        raise HTTPException(status_code=502, detail="Analysis unavailable") from exc

    try:
        await sessions.save_insight(handle, cache_store, insight)
    except Exception:
        logger.exception("Failed to cache analysis for %s", handle)
    return insight.to_payload()


@app.get("/api/conversations")
async def list_conversations(
    session_id: Optional[str] = Query(None, alias="sessionId"),
) -> Dict[str, Any]:
    session_id = _require_session(session_id)
    try:
        conversations = await get_session_store().list_conversations(session_id)
    except Exception:
        logger.exception("Listing conversations failed for %s", session_id)
        conversations = []
    return {"conversations": [item.to_payload() for item in conversations]}


@app.post("/api/conversations")
async def create_conversation(request: ConversationCreateRequest) -> Dict[str, Any]:
    session_id = _require_session(request.session_id)
    try:
        conversation = await get_session_store().create_conversation(session_id, request.title)
    except SessionStoreError as exc:
        raise _bad_gateway(exc) from exc
    return conversation.to_payload()


@app.get("/api/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    session_id: Optional[str] = Query(None, alias="sessionId"),
) -> Dict[str, Any]:
    session_id = _require_session(session_id)
    try:
        conversation = await get_session_store().get_conversation(session_id, conversation_id)
    except SessionStoreError as exc:
        raise _bad_gateway(exc) from exc
    if conversation is None:
        raise HTTPException(status_code=404, detail="Not found")
    return conversation.to_payload()


@app.put("/api/conversations/{conversation_id}")
async def update_conversation(
    conversation_id: str,
    request: ConversationUpdateRequest,
    session_id: Optional[str] = Query(None, alias="sessionId"),
) -> Dict[str, Any]:
    session_id = _require_session(session_id)
    try:
        await get_session_store().update_conversation(
            session_id, conversation_id, messages=request.messages, title=request.title
        )
    except SessionStoreError as exc:
        raise _bad_gateway(exc) from exc
    return {"id": conversation_id, "updated": True}


@app.get("/api/wishlist")
async def list_wishlist(
    session_id: Optional[str] = Query(None, alias="sessionId"),
) -> Dict[str, Any]:
    session_id = _require_session(session_id)
    try:
        items = await get_session_store().list_wishlist(session_id)
    except Exception:
        logger.exception("Listing wishlist failed for %s", session_id)
        items = []
    return {"wishlist": [item.to_payload() for item in items]}


@app.post("/api/wishlist")
async def add_wishlist_item(request: WishlistAddRequest) -> Dict[str, Any]:
    session_id = _require_session(request.session_id)
    item = WishlistItem(
        product_handle=request.product_handle,
        product_title=request.product_title,
        product_image=request.product_image,
        product_price=request.product_price,
        store=request.store,
    )
    try:
        stored = await get_session_store().add_wishlist_item(session_id, item)
    except SessionStoreError as exc:
        raise _bad_gateway(exc) from exc
    return stored.to_payload()


@app.delete("/api/wishlist/{item_id}")
async def remove_wishlist_item(
    item_id: str,
    session_id: Optional[str] = Query(None, alias="sessionId"),
) -> Dict[str, Any]:
    session_id = _require_session(session_id)
    try:
        await get_session_store().remove_wishlist_item(session_id, item_id)
    except SessionStoreError as exc:
        raise _bad_gateway(exc) from exc
    return {"id": item_id, "removed": True}


@app.get("/health")
async def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


__all__ = [
    "app",
    "chat_endpoint",
    "get_gateway",
    "get_session_store",
    "get_turn_logger",
]
