"""Session-scoped site structure index backed by SQLite."""
from __future__ import annotations

import logging
import sqlite3
import threading
from collections import defaultdict
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .config import StorageConfig
from .db import connect
from .models import ROOT_PARENT_ID, StructureNode, name_hash, validate_node_fields
from .telemetry import (
    NODE_DELETED,
    NODE_INSERTED,
    NoOpTelemetry,
    TelemetrySink,
    deleted_event,
    inserted_event,
)

logger = logging.getLogger(__name__)

TABLE_NAME = "STRUCTURE"

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS STRUCTURE (
    STRUCTUREID INTEGER PRIMARY KEY AUTOINCREMENT,
    SESSIONID BIGINT NOT NULL,
    PARENTID BIGINT NOT NULL,
    HISTORYID INT,
    NAME VARCHAR(8192) NOT NULL,
    NAMEHASH BIGINT NOT NULL,
    URL VARCHAR(8192) NOT NULL,
    METHOD VARCHAR(10) NOT NULL
)
"""

_CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS IDX_STRUCTURE_LOOKUP ON STRUCTURE (SESSIONID, NAMEHASH, METHOD)",
    "CREATE INDEX IF NOT EXISTS IDX_STRUCTURE_PARENT ON STRUCTURE (SESSIONID, PARENTID)",
)

_SQL_TABLE_EXISTS = "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?"
_SQL_READ = "SELECT * FROM STRUCTURE WHERE SESSIONID = ? AND STRUCTUREID = ?"
_SQL_FIND = (
    "SELECT * FROM STRUCTURE WHERE SESSIONID = ? AND NAMEHASH = ? AND METHOD = ? "
    "ORDER BY STRUCTUREID"
)
_SQL_INSERT = (
    "INSERT INTO STRUCTURE (SESSIONID, PARENTID, HISTORYID, NAME, NAMEHASH, URL, METHOD) "
    "VALUES (?, ?, ?, ?, ?, ?, ?) RETURNING STRUCTUREID"
)
_SQL_CHILDREN = "SELECT * FROM STRUCTURE WHERE SESSIONID = ? AND PARENTID = ? ORDER BY STRUCTUREID"
_SQL_CHILD_COUNT = "SELECT COUNT(*) FROM STRUCTURE WHERE SESSIONID = ? AND PARENTID = ?"
_SQL_SESSION = "SELECT * FROM STRUCTURE WHERE SESSIONID = ? ORDER BY STRUCTUREID"
_SQL_DELETE_ONE = "DELETE FROM STRUCTURE WHERE SESSIONID = ? AND STRUCTUREID = ?"

# Binds (session, session, structure_id, session).
_SUBTREE_IDS = """
    WITH RECURSIVE subtree(id) AS (
        SELECT STRUCTUREID FROM STRUCTURE WHERE SESSIONID = ? AND STRUCTUREID = ?
        UNION
        SELECT s.STRUCTUREID FROM STRUCTURE s JOIN subtree ON s.PARENTID = subtree.id
        WHERE s.SESSIONID = ?
    )
    SELECT id FROM subtree
"""
_SQL_SUBTREE = (
    f"SELECT * FROM STRUCTURE WHERE SESSIONID = ? AND STRUCTUREID IN ({_SUBTREE_IDS}) "
    "ORDER BY STRUCTUREID"
)
# Must start with DELETE so sqlite3 reports rowcount.
_SQL_DELETE_SUBTREE = f"DELETE FROM STRUCTURE WHERE SESSIONID = ? AND STRUCTUREID IN ({_SUBTREE_IDS})"


class StructureError(Exception):
    """Base exception for structure index failures."""


class StorageError(StructureError):
    """Raised when the underlying database operation fails."""


class NotALeafError(StructureError):
    """Raised when ``delete_leaf`` targets a node that still has children."""


class StructureIndex:
    """Persistent tree of discovered URL + method nodes, scoped by session.

    Every statement runs under one re-entrant lock, so the index can be shared
    between proxy and crawler threads. ``find_or_insert`` holds that lock across
    the lookup and the insert, which keeps ``(session, name, method)`` unique for
    all writers that go through the same index.

    A connection passed in by the caller is left untouched apart from the
    ``STRUCTURE`` table: rows are decoded per cursor and ``close`` only closes
    connections the index opened itself.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        telemetry: TelemetrySink | None = None,
        owns_connection: bool = False,
    ) -> None:
        self._conn = conn
        self._owns_connection = owns_connection
        self._lock = threading.RLock()
        self._closed = False
        self.telemetry = telemetry or NoOpTelemetry()
        self.ensure_schema()

    # -------------------------------------------------------------- construction
    @classmethod
    def open(
        cls,
        config: StorageConfig | None = None,
        *,
        telemetry: TelemetrySink | None = None,
    ) -> "StructureIndex":
        config = config or StorageConfig.from_env()
        try:
            conn = connect(config.db_path, timeout=config.timeout_seconds)
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"Failed to open structure database {config.db_path}: {exc}") from exc
        try:
            return cls(conn, telemetry=telemetry, owns_connection=True)
        except StructureError:
            conn.close()
            raise

    def ensure_schema(self) -> bool:
        """Create the structure table and its indexes if missing.

        Returns True when the table had to be created.
        """

        with self._lock:
            try:
                created = self._execute(_SQL_TABLE_EXISTS, (TABLE_NAME,)).fetchone() is None
                with self._conn:
                    if created:
                        self._execute(_CREATE_TABLE)
                    for statement in _CREATE_INDEXES:
                        self._execute(statement)
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to bootstrap {TABLE_NAME} table: {exc}") from exc
        if created:
            logger.info("Created %s table", TABLE_NAME)
        return created

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._owns_connection:
                self._conn.close()

    def __enter__(self) -> "StructureIndex":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -------------------------------------------------------------------- public
    def read(self, session_id: int, structure_id: int) -> Optional[StructureNode]:
        with self._lock:
            try:
                row = self._execute(_SQL_READ, (session_id, structure_id)).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to read structure node {structure_id}: {exc}") from exc
        return _build(row)

    def insert(
        self,
        session_id: int,
        parent_id: int,
        history_id: Optional[int],
        name: str,
        url: str,
        method: str,
    ) -> StructureNode:
        validate_node_fields(name, url, method)
        params = (session_id, parent_id, history_id, name, name_hash(name), url, method)
        with self._lock:
            try:
                with self._conn:
                    rows = self._execute(_SQL_INSERT, params).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to insert structure node {name!r}: {exc}") from exc
            if not rows:
                raise StorageError(f"Insert of structure node {name!r} returned no identity")
            structure_id = int(rows[0][0])
            node = self.read(session_id, structure_id)
        if node is None:
            raise StorageError(f"Inserted structure node {structure_id} could not be read back")
        logger.debug("Inserted structure node %s (%s %s) in session %s", node.structure_id, method, name, session_id)
        self._emit(NODE_INSERTED, inserted_event(node))
        return node

    def find(self, session_id: int, name: str, method: str) -> Optional[StructureNode]:
        with self._lock:
            try:
                rows = self._execute(_SQL_FIND, (session_id, name_hash(name), method)).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to find structure node {name!r}: {exc}") from exc
        for row in rows:
            # Several names can share a hash; only an exact name match counts.
            if row["NAME"] == name:
                return _build(row)
        return None

    def find_or_insert(
        self,
        session_id: int,
        parent_id: int,
        history_id: Optional[int],
        name: str,
        url: str,
        method: str,
    ) -> Tuple[StructureNode, bool]:
        """Return the existing node for ``(name, method)`` or insert it.

        The boolean is True when a new node was created.
        """

        with self._lock:
            existing = self.find(session_id, name, method)
            if existing is not None:
                return existing, False
            return self.insert(session_id, parent_id, history_id, name, url, method), True

    def get_children(self, session_id: int, parent_id: int) -> List[StructureNode]:
        with self._lock:
            try:
                rows = self._execute(_SQL_CHILDREN, (session_id, parent_id)).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to list children of {parent_id}: {exc}") from exc
        return [_build_row(row) for row in rows]

    def get_child_count(self, session_id: int, parent_id: int) -> int:
        with self._lock:
            try:
                row = self._execute(_SQL_CHILD_COUNT, (session_id, parent_id)).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to count children of {parent_id}: {exc}") from exc
        return int(row[0]) if row is not None else 0

    def get_subtree(self, session_id: int, structure_id: int) -> List[StructureNode]:
        """Return a node and all of its descendants, read in one statement.

        Passing the root sentinel returns every node of the session. The result
        is ordered by identity and is empty when the node does not exist.
        """

        if structure_id == ROOT_PARENT_ID:
            sql, params = _SQL_SESSION, (session_id,)
        else:
            sql, params = _SQL_SUBTREE, (session_id, session_id, structure_id, session_id)
        with self._lock:
            try:
                rows = self._execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to read structure subtree {structure_id}: {exc}") from exc
        return [_build_row(row) for row in rows]

    def iter_subtree(self, session_id: int, structure_id: int) -> Iterator[Tuple[int, StructureNode]]:
        """Yield ``(depth, node)`` pairs depth-first below ``structure_id``.

        The walk runs over a single ``get_subtree`` snapshot. The starting node
        itself is not yielded.
        """

        children: Dict[int, List[StructureNode]] = defaultdict(list)
        for node in self.get_subtree(session_id, structure_id):
            children[node.parent_id].append(node)

        stack = [(0, child) for child in reversed(children.get(structure_id, []))]
        seen: set[int] = set()
        while stack:
            depth, node = stack.pop()
            if node.structure_id in seen:
                continue
            seen.add(node.structure_id)
            yield depth, node
            stack.extend((depth + 1, child) for child in reversed(children.get(node.structure_id, [])))

    def delete_leaf(self, session_id: int, structure_id: int) -> bool:
        """Remove a childless node. Returns False if the node does not exist."""

        with self._lock:
            if self.get_child_count(session_id, structure_id) > 0:
                raise NotALeafError(
                    f"Structure node {structure_id} in session {session_id} has children"
                )
            try:
                with self._conn:
                    cursor = self._execute(_SQL_DELETE_ONE, (session_id, structure_id))
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to delete structure node {structure_id}: {exc}") from exc
        removed = cursor.rowcount > 0
        if removed:
            logger.info("Deleted structure leaf %s in session %s", structure_id, session_id)
            self._emit(NODE_DELETED, deleted_event(session_id, structure_id, 1, subtree=False))
        return removed

    def delete_subtree(self, session_id: int, structure_id: int) -> int:
        """Remove a node and all of its descendants in one transaction.

        Returns the number of removed rows.
        """

        params = (session_id, session_id, structure_id, session_id)
        with self._lock:
            try:
                with self._conn:
                    cursor = self._execute(_SQL_DELETE_SUBTREE, params)
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to delete structure subtree {structure_id}: {exc}") from exc
        removed = max(cursor.rowcount, 0)
        if removed:
            logger.info(
                "Deleted structure subtree %s in session %s (%d nodes)", structure_id, session_id, removed
            )
            self._emit(NODE_DELETED, deleted_event(session_id, structure_id, removed, subtree=True))
        return removed

    # ------------------------------------------------------------------ internal
    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        # Callers hold self._lock.
        if self._closed:
            raise StorageError("Structure index is closed")
        cursor = self._conn.cursor()
        cursor.row_factory = sqlite3.Row
        cursor.execute(sql, params)
        return cursor

    def _emit(self, event: str, payload: Dict[str, object]) -> None:
        try:
            self.telemetry.emit(event, payload)
        except Exception:  # pragma: no cover - defensive log
            logger.exception("structure telemetry emit failed: %s", event)


def _build(row: Optional[sqlite3.Row]) -> Optional[StructureNode]:
    if row is None:
        return None
    return _build_row(row)


def _build_row(row: sqlite3.Row) -> StructureNode:
    history_id = row["HISTORYID"]
    return StructureNode(
        structure_id=int(row["STRUCTUREID"]),
        session_id=int(row["SESSIONID"]),
        parent_id=int(row["PARENTID"]),
        history_id=int(history_id) if history_id is not None else None,
        name=row["NAME"],
        name_hash=int(row["NAMEHASH"]),
        url=row["URL"],
        method=row["METHOD"],
    )


__all__ = [
    "NotALeafError",
    "StorageError",
    "StructureError",
    "StructureIndex",
    "TABLE_NAME",
]
