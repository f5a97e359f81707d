"""Chat turn logging utilities."""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Sequence


class TurnLogger:
    """Append one JSON line per chat turn."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    async def log_turn(
        self,
        *,
        session_id: str,
        store: str,
        user_message: str,
        events: Sequence[Dict[str, Any]],
        conversation_id: str | None = None,
    ) -> None:
        """Persist the streamed events of a finished turn."""

        await self.log(
            {
                "session_id": session_id,
                "conversation_id": conversation_id,
                "store": store,
                "user_message": user_message,
                "events": list(events),
            }
        )

    async def log(self, payload: Dict[str, Any]) -> None:
        """Persist a log payload with automatic timestamping."""

        record = {
            **payload,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        }
        json_line = json.dumps(record, ensure_ascii=False, default=str)
        async with self._lock:
            await asyncio.to_thread(self._append_line, json_line)

    def _append_line(self, line: str) -> None:
        with self._path.open("a", encoding="utf-8") as fp:
            fp.write(line + "\n")


__all__ = ["TurnLogger"]
