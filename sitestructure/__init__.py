"""Session-scoped site structure index."""
from .config import StorageConfig
from .models import ROOT_PARENT_ID, StructureNode, ValidationError, name_hash
from .observability import SessionObservability
from .site_map import SiteMapRecorder
from .structure import NotALeafError, StorageError, StructureError, StructureIndex

__all__ = [
    "ROOT_PARENT_ID",
    "NotALeafError",
    "SessionObservability",
    "SiteMapRecorder",
    "StorageConfig",
    "StorageError",
    "StructureError",
    "StructureIndex",
    "StructureNode",
    "ValidationError",
    "name_hash",
]
