"""HTTP adapter for kidledger."""
from __future__ import annotations

from .application import create_app, get_actor, serialize

__all__ = ["create_app", "get_actor", "serialize"]
