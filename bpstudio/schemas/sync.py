"""Document synchronization state schemas."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class SyncPhase(StrEnum):
    """Propagation direction currently owned by the sync controller."""

    IDLE = "idle"
    TEXT_DRIVEN = "text_driven"
    STRUCTURE_DRIVEN = "structure_driven"
    SUSPENDED = "suspended"


class SyncState(BaseModel):
    """Snapshot of the sync controller's bookkeeping."""

    phase: SyncPhase = Field(default=SyncPhase.IDLE, description="Current phase")
    canonical_text: str = Field(default="", description="Current source-of-truth text")
    last_pushed_text: str | None = Field(
        default=None,
        description="Text the structural form was last built from or absorbed",
    )
    internal_update: bool = Field(
        default=False,
        description="Set while a structure-originated push awaits its echo",
    )
    rebuild_count: int = Field(default=0, ge=0, description="Structural rebuilds so far")
