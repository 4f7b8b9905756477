"""Structure change events and the sinks that consume them."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from .models import StructureNode

NODE_INSERTED = "structure.inserted"
NODE_DELETED = "structure.deleted"
STRUCTURE_EVENTS = frozenset({NODE_INSERTED, NODE_DELETED})


def inserted_event(node: StructureNode, *, timestamp: Optional[str] = None) -> Dict[str, object]:
    """Payload for ``structure.inserted``: every stored column plus a timestamp."""

    payload: Dict[str, object] = node.to_dict()
    payload["timestamp"] = timestamp or _utc_now()
    return payload


def deleted_event(
    session_id: int,
    structure_id: int,
    removed: int,
    *,
    subtree: bool,
    timestamp: Optional[str] = None,
) -> Dict[str, object]:
    """Payload for ``structure.deleted``; ``removed`` counts every dropped row."""

    return {
        "session_id": session_id,
        "structure_id": structure_id,
        "removed": removed,
        "scope": "subtree" if subtree else "leaf",
        "timestamp": timestamp or _utc_now(),
    }


class TelemetrySink:
    """Receives ``structure.*`` events keyed by ``session_id``."""

    def emit(self, event: str, payload: Dict[str, object]) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


class NoOpTelemetry(TelemetrySink):
    def emit(self, event: str, payload: Dict[str, object]) -> None:  # pragma: no cover - intentionally empty
        return


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


__all__ = [
    "NODE_DELETED",
    "NODE_INSERTED",
    "NoOpTelemetry",
    "STRUCTURE_EVENTS",
    "TelemetrySink",
    "deleted_event",
    "inserted_event",
]
