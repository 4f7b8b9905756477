"""Core data models for the site structure index."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

ROOT_PARENT_ID = 0
MAX_NAME_LENGTH = 8192
MAX_URL_LENGTH = 8192
MAX_METHOD_LENGTH = 10


class ValidationError(Exception):
    """Raised when node field validation fails."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("Node validation failed")
        self.errors = errors

    def __str__(self) -> str:  # pragma: no cover - debug convenience
        return f"ValidationError(errors={self.errors!r})"


@dataclass(slots=True, frozen=True)
class StructureNode:
    """One persisted URL + method node of a session's site tree."""

    structure_id: int
    session_id: int
    parent_id: int
    history_id: Optional[int]
    name: str
    name_hash: int
    url: str
    method: str

    @property
    def is_root_child(self) -> bool:
        return self.parent_id == ROOT_PARENT_ID

    def to_dict(self) -> Dict[str, object]:
        return {
            "structure_id": self.structure_id,
            "session_id": self.session_id,
            "parent_id": self.parent_id,
            "history_id": self.history_id,
            "name": self.name,
            "name_hash": self.name_hash,
            "url": self.url,
            "method": self.method,
        }


def name_hash(name: str) -> int:
    """Return the signed 32-bit polynomial hash of ``name``.

    Matches Java's ``String.hashCode`` over UTF-16 code units so rows written
    by hashCode-based tooling keep resolving.
    """

    value = 0
    encoded = name.encode("utf-16-be", "surrogatepass")
    for index in range(0, len(encoded), 2):
        unit = (encoded[index] << 8) | encoded[index + 1]
        value = (31 * value + unit) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 0x100000000
    return value


def validate_node_fields(name: object, url: object, method: object) -> None:
    """Raise ``ValidationError`` if the insert preconditions are not met."""

    errors: Dict[str, str] = {}
    if not isinstance(name, str) or not name:
        errors["name"] = "name is required"
    elif len(name) > MAX_NAME_LENGTH:
        errors["name"] = f"name must be at most {MAX_NAME_LENGTH} characters"

    if not isinstance(url, str) or not url:
        errors["url"] = "url is required"
    elif len(url) > MAX_URL_LENGTH:
        errors["url"] = f"url must be at most {MAX_URL_LENGTH} characters"

    if not isinstance(method, str) or not method:
        errors["method"] = "method is required"
    elif len(method) > MAX_METHOD_LENGTH:
        errors["method"] = f"method must be at most {MAX_METHOD_LENGTH} characters"

    if errors:
        raise ValidationError(errors)


__all__ = [
    "MAX_METHOD_LENGTH",
    "MAX_NAME_LENGTH",
    "MAX_URL_LENGTH",
    "ROOT_PARENT_ID",
    "StructureNode",
    "ValidationError",
    "name_hash",
    "validate_node_fields",
]
