"""Operational utilities for kidledger."""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Optional


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


class StructuredLogger:
    """Write JSON lines log entries for admin inspection."""

    def __init__(self, *, path: Path | None = None, capacity: int = 1000) -> None:
        self.path = path
        self._entries: Deque[dict] = deque(maxlen=capacity)

    def log(self, event_type: str, *, level: str = "info", **fields: object) -> dict:
        entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": level,
            "event": event_type,
            **fields,
        }
        self._entries.append(entry)
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, default=_json_default) + "\n")
        return entry

    def warning(self, event_type: str, **fields: object) -> dict:
        return self.log(event_type, level="warning", **fields)

    def error(self, event_type: str, **fields: object) -> dict:
        return self.log(event_type, level="error", **fields)

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        if limit <= 0:
            return tuple()
        return tuple(self._entries)[-limit:]

    def entries(self, *, event: Optional[str] = None, level: Optional[str] = None) -> tuple[dict, ...]:
        records = list(self._entries)
        if event is not None:
            records = [entry for entry in records if entry["event"] == event]
        if level is not None:
            records = [entry for entry in records if entry["level"] == level]
        return tuple(records)


__all__ = ["StructuredLogger"]
