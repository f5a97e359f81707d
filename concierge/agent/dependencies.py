"""Dependency definitions for the shopping concierge agent."""

from __future__ import annotations

from dataclasses import dataclass

from ..catalog.client import ShopCatalog
from ..sessions.store import SessionStore


@dataclass
class AgentDependencies:
    """Runtime dependencies passed to every tool call of a turn.

    ``catalog`` is bound to the store the conversation is shopping on; cart
    ids the model passes back are only ever sent to that store.
    """

    session_id: str
    catalog: ShopCatalog
    sessions: SessionStore

    @property
    def store(self) -> str:
        return self.catalog.store


@dataclass
class ToolContext:
    """Minimal run context handed to tool functions."""

    deps: AgentDependencies


__all__ = ["AgentDependencies", "ToolContext"]
