"""Configuration helpers for the shopping concierge backend."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, TypeVar

from dotenv import load_dotenv

from .catalog.stores import DEFAULT_STORES, StoreInfo, find_store

# Load .env if present to simplify local development.
load_dotenv()

T = TypeVar("T", int, float)


@dataclass(frozen=True)
class Settings:
    """Holds configuration derived from environment variables."""

    stores: tuple[StoreInfo, ...]
    default_store: str
    session_backend_url: str | None
    catalog_timeout_seconds: float
    chat_turn_timeout_seconds: float
    analysis_timeout_seconds: float
    max_agent_steps: int
    resolver_page_ceiling: int
    turn_log_path: Path | None

    @property
    def store_domains(self) -> list[str]:
        """Return the configured store domains in priority order."""

        return [store.domain for store in self.stores]

    def resolve_store(self, key: str | None) -> str:
        """Map a store id or domain to a domain, defaulting to the primary store.

        Unknown values are passed through untouched so that any storefront
        speaking the catalog protocol can be addressed explicitly.
        """

        if not key or not key.strip():
            return self.default_store
        store = find_store(self.stores, key)
        if store is not None:
            return store.domain
        return key.strip()


def _positive_from_env(key: str, default: T, cast: Callable[[str], T], kind: str) -> T:
    """Parse a strictly positive number from the environment."""

    raw_value = os.getenv(key)
    if raw_value is None or not raw_value.strip():
        return default

    try:
        value = cast(raw_value.strip())
    except ValueError as exc:
        raise RuntimeError(f"Environment variable '{key}' must be {kind}") from exc

    if value <= 0:
        raise RuntimeError(f"Environment variable '{key}' must be greater than zero")

    return value


def _int_from_env(key: str, default: int) -> int:
    return _positive_from_env(key, default, int, "an integer")


def _float_from_env(key: str, default: float) -> float:
    return _positive_from_env(key, default, float, "a number")


def _stores_from_env(key: str) -> tuple[StoreInfo, ...]:
    """Parse the store directory from a JSON list of ``{id, name, domain}``."""

    raw_value = os.getenv(key)
    if raw_value is None or not raw_value.strip():
        return DEFAULT_STORES

    try:
        entries = json.loads(raw_value)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Environment variable '{key}' must be a JSON list") from exc

    if not isinstance(entries, list) or not entries:
        raise RuntimeError(f"Environment variable '{key}' must be a non-empty JSON list")

    stores: list[StoreInfo] = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("domain"):
            raise RuntimeError(
                f"Every entry in '{key}' must be an object with a 'domain' field"
            )
        domain = str(entry["domain"]).strip()
        stores.append(
            StoreInfo(
                id=str(entry.get("id") or domain),
                name=str(entry.get("name") or domain),
                domain=domain,
            )
        )
    return tuple(stores)


def get_settings() -> Settings:
    """Create settings populated from the environment."""

    stores = _stores_from_env("CONCIERGE_STORES")

    default_raw = os.getenv("CONCIERGE_DEFAULT_STORE")
    default_store = stores[0].domain
    if default_raw:
        match = find_store(stores, default_raw)
        default_store = match.domain if match else default_raw.strip()

    backend_url = os.getenv("SESSION_BACKEND_URL") or None
    log_path_raw = os.getenv("CONCIERGE_TURN_LOG_PATH")

    return Settings(
        stores=stores,
        default_store=default_store,
        session_backend_url=backend_url.rstrip("/") if backend_url else None,
        catalog_timeout_seconds=_float_from_env(
            "CATALOG_TIMEOUT_SECONDS", 30.0
        ),
        chat_turn_timeout_seconds=_float_from_env(
            "CHAT_TURN_TIMEOUT_SECONDS", 60.0
        ),
        analysis_timeout_seconds=_float_from_env(
            "ANALYSIS_TIMEOUT_SECONDS", 30.0
        ),
        max_agent_steps=_int_from_env("MAX_AGENT_STEPS", 5),
        resolver_page_ceiling=_int_from_env("RESOLVER_PAGE_CEILING", 5),
        turn_log_path=(
            Path(log_path_raw).expanduser().resolve() if log_path_raw else None
        ),
    )


settings = get_settings()


__all__ = ["Settings", "get_settings", "settings"]
