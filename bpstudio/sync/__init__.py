"""Two-way sync between blueprint text and its structural form."""

from bpstudio.sync.controller import DocumentSyncController, is_degenerate
from bpstudio.sync.document import StructuralDocument
from bpstudio.sync.scheduler import ScheduledTask
from bpstudio.sync.t3d import T3DDocument, T3DGraph, T3DMutation, T3DObject, parse_t3d

__all__ = [
    "DocumentSyncController",
    "ScheduledTask",
    "StructuralDocument",
    "T3DDocument",
    "T3DGraph",
    "T3DMutation",
    "T3DObject",
    "is_degenerate",
    "parse_t3d",
]
