"""Logfire setup shared by the model clients and the store gateway."""

from __future__ import annotations

import os

import logfire


_LOGFIRE_READY = False


def _ensure_logfire() -> None:
    """Configure Logfire once per process.

    Spans are exported only when ``LOGFIRE_API_KEY`` is set; otherwise they
    stay local. Outbound httpx traffic (catalog and session backend calls) is
    traced alongside the model requests.
    """

    global _LOGFIRE_READY
    if _LOGFIRE_READY:
        return

    token = os.getenv("LOGFIRE_API_KEY")
    logfire.configure(
        token=token or None,
        send_to_logfire=bool(token),
        service_name=os.getenv("LOGFIRE_SERVICE_NAME", "concierge"),
    )
    logfire.instrument_httpx()
    _LOGFIRE_READY = True


__all__ = ["_ensure_logfire"]
