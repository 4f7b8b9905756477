"""Site map recorder that feeds observed requests into the structure index."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from .models import ROOT_PARENT_ID, StructureNode, ValidationError
from .structure import StructureIndex

logger = logging.getLogger(__name__)

FOLDER_METHOD = "GET"


@dataclass(slots=True)
class RecordResult:
    node: StructureNode
    created: List[StructureNode]

    def to_dict(self) -> dict:
        return {
            "node": self.node.to_dict(),
            "created": [node.to_dict() for node in self.created],
        }


class SiteMapRecorder:
    """Maps request URLs onto a chain of host and path-segment nodes."""

    def __init__(self, index: StructureIndex) -> None:
        self.index = index

    def record(
        self,
        session_id: int,
        url: str,
        method: str = "GET",
        history_id: Optional[int] = None,
    ) -> RecordResult:
        """Ensure every node on the path to ``url`` exists and return the leaf.

        Intermediate nodes are GET folders without a history record; the leaf
        carries the request method and ``history_id``.
        """

        *folders, (leaf_name, _) = structural_chain(url)
        method = method.upper()
        parent_id = ROOT_PARENT_ID
        created: List[StructureNode] = []
        for name, folder_url in folders:
            folder, was_created = self.index.find_or_insert(
                session_id, parent_id, None, name, folder_url, FOLDER_METHOD
            )
            if was_created:
                created.append(folder)
            parent_id = folder.structure_id

        leaf, was_created = self.index.find_or_insert(
            session_id, parent_id, history_id, leaf_name, url, method
        )
        if was_created:
            created.append(leaf)
            logger.debug("Recorded %s %s with %d new nodes", method, url, len(created))
        return RecordResult(node=leaf, created=created)

    def render(self, session_id: int) -> str:
        lines: List[str] = []
        for depth, node in self.index.iter_subtree(session_id, ROOT_PARENT_ID):
            label = node.name if depth == 0 else node.name.rsplit("/", 1)[-1]
            suffix = f" [history {node.history_id}]" if node.history_id is not None else ""
            lines.append(f"{'  ' * depth}{node.method} {label} (#{node.structure_id}){suffix}")
        return "\n".join(lines)


def structural_chain(url: str) -> List[Tuple[str, str]]:
    """Return ``(name, url)`` pairs from the host node down to the last path segment.

    Scheme and host are lowercased in both the names and the folder URLs.
    """

    parts = urlsplit(url)
    if not (parts.scheme and parts.netloc):
        raise ValidationError({"url": "url must include scheme and host"})
    host = f"{parts.scheme.lower()}://{parts.netloc.lower()}"
    chain: List[Tuple[str, str]] = [(host, host + "/")]
    name = host
    for segment in parts.path.split("/"):
        if not segment:
            continue
        name = f"{name}/{segment}"
        chain.append((name, name))
    return chain


__all__ = ["RecordResult", "SiteMapRecorder", "structural_chain"]
