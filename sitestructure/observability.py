"""Per-session JSONL event log and metrics for structure changes."""
from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .langfuse import LangfuseClient
from .telemetry import NODE_DELETED, NODE_INSERTED, TelemetrySink

logger = logging.getLogger(__name__)


class SessionObservability(TelemetrySink):
    """Aggregates structure events into JSONL logs and metrics summaries."""

    def __init__(
        self,
        storage_root: Path | str = "artifacts/sessions",
        *,
        langfuse_client: Optional[LangfuseClient] = None,
    ) -> None:
        self.storage_root = Path(storage_root)
        self._metrics_cache: Dict[str, Dict[str, Any]] = {}
        self._langfuse = langfuse_client
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ public
    def emit(self, event: str, payload: Dict[str, object]) -> None:
        session_key = self._extract_session_id(payload)
        if not session_key:
            logger.debug("Telemetry event %s missing session_id; dropping", event)
            return

        entry = dict(payload)
        entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        entry["event"] = event
        with self._lock:
            self._append_log(session_key, entry)
            metrics = self._metrics_cache.get(session_key)
            if metrics is None:
                metrics = self._load_metrics(session_key)
                self._metrics_cache[session_key] = metrics
            self._update_metrics(metrics, entry)
            self._persist_metrics(session_key, metrics)
        self._forward_to_langfuse(event, entry)

    def metrics_for(self, session_id: int | str) -> Dict[str, Any]:
        session_key = str(session_id)
        with self._lock:
            cached = self._metrics_cache.get(session_key)
            if cached is None:
                cached = self._load_metrics(session_key)
            return dict(cached)

    # ---------------------------------------------------------------- internal
    def _append_log(self, session_key: str, entry: Dict[str, object]) -> None:
        logs_path = self._logs_path(session_key)
        logs_path.parent.mkdir(parents=True, exist_ok=True)
        with logs_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry) + "\n")

    @staticmethod
    def _update_metrics(metrics: Dict[str, Any], entry: Dict[str, object]) -> None:
        event = entry.get("event", "")
        if event == NODE_INSERTED:
            metrics["inserted_count"] = int(metrics.get("inserted_count", 0)) + 1
            method = str(entry.get("method") or "UNKNOWN")
            by_method = metrics.setdefault("inserted_by_method", {})
            by_method[method] = int(by_method.get(method, 0)) + 1
        elif event == NODE_DELETED:
            removed = _to_int(entry.get("removed")) or 0
            metrics["deleted_count"] = int(metrics.get("deleted_count", 0)) + removed
        metrics["last_event"] = event
        metrics["last_event_at"] = entry.get("timestamp")

    def _load_metrics(self, session_key: str) -> Dict[str, Any]:
        metrics_path = self._metrics_path(session_key)
        if metrics_path.exists():
            try:
                loaded = json.loads(metrics_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                loaded = None
            if isinstance(loaded, dict):
                return loaded
        return {"session_id": session_key}

    def _persist_metrics(self, session_key: str, metrics: Dict[str, Any]) -> None:
        self._metrics_path(session_key).write_text(json.dumps(metrics, indent=2), encoding="utf-8")

    def _logs_path(self, session_key: str) -> Path:
        return self.storage_root / session_key / "observability" / "logs.jsonl"

    def _metrics_path(self, session_key: str) -> Path:
        return self._logs_path(session_key).parent / "metrics.json"

    @staticmethod
    def _extract_session_id(payload: Dict[str, object]) -> str:
        for key in ("session_id", "sessionId"):
            value = payload.get(key)
            if isinstance(value, bool):
                continue
            if isinstance(value, (int, str)) and str(value):
                return str(value)
        return ""

    def _forward_to_langfuse(self, event: str, entry: Dict[str, object]) -> None:
        if not self._langfuse:
            return
        try:
            self._langfuse.emit(event, dict(entry))
        except Exception:  # pragma: no cover - telemetry best effort
            logger.warning("Failed to forward event %s to Langfuse", event, exc_info=True)


def _to_int(value: object) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


__all__ = ["SessionObservability"]
