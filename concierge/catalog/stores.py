"""Directory of storefronts the concierge can shop on."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence

_GENERIC_DOMAIN_LABELS = frozenset({"www", "store", "shop"})
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class StoreInfo:
    """A storefront exposing the MCP catalog endpoint at ``https://{domain}``."""

    id: str
    name: str
    domain: str

    @property
    def domain_prefix(self) -> str:
        """Return the first meaningful domain label (``store.foo.com`` -> ``foo``)."""

        labels = [label for label in self.domain.lower().split(".") if label]
        for label in labels[:-1] or labels:
            if label not in _GENERIC_DOMAIN_LABELS:
                return label
        return labels[0] if labels else ""

    def match_keys(self) -> List[str]:
        """Compact lowercase keys used to infer a store from a product handle."""

        keys: List[str] = []
        for raw in (self.id, self.name, self.domain_prefix):
            compact = "".join(tokenize(raw))
            if compact and compact not in keys:
                keys.append(compact)
        return keys


DEFAULT_STORES: tuple[StoreInfo, ...] = (
    StoreInfo(
        id="bitcoin-magazine",
        name="Bitcoin Magazine",
        domain="store.bitcoinmagazine.com",
    ),
    StoreInfo(id="blockstream", name="Blockstream", domain="store.blockstream.com"),
    StoreInfo(id="ridge-wallet", name="Ridge Wallet", domain="ridgewallet.com"),
    StoreInfo(
        id="death-wish-coffee",
        name="Death Wish Coffee",
        domain="deathwishcoffee.com",
    ),
    StoreInfo(id="gymshark", name="Gymshark", domain="gymshark.com"),
)


def tokenize(value: str) -> List[str]:
    """Split text into lowercase alphanumeric tokens."""

    return [token for token in _TOKEN_SPLIT.split(value.lower()) if token]


def find_store(stores: Iterable[StoreInfo], key: str) -> StoreInfo | None:
    """Look up a store by id or domain."""

    lowered = key.strip().lower()
    for store in stores:
        if lowered in (store.id.lower(), store.domain.lower()):
            return store
    return None


def infer_store(handle: str, stores: Sequence[StoreInfo]) -> StoreInfo | None:
    """Guess the store a handle belongs to by token-prefix matching.

    The handle is compacted to its alphanumeric tokens and compared against
    every store's id, name and domain prefix. The longest matching key wins so
    that ``ridge-wallet-...`` prefers ``ridgewallet`` over a shorter ``ridge``.
    """

    compact_handle = "".join(tokenize(handle))
    if not compact_handle:
        return None

    best: StoreInfo | None = None
    best_length = 0
    for store in stores:
        for key in store.match_keys():
            if compact_handle.startswith(key) and len(key) > best_length:
                best = store
                best_length = len(key)
    return best


__all__ = ["DEFAULT_STORES", "StoreInfo", "find_store", "infer_store", "tokenize"]
