"""Blueprint Studio schema definitions.

All Pydantic v2 models used across streaming, extraction and sync.
"""

from bpstudio.schemas.chat import Message, Role
from bpstudio.schemas.config import StudioConfig
from bpstudio.schemas.providers import (
    DEFAULT_BASE_URLS,
    DEFAULT_KEY_ENVS,
    PROVIDER_MODELS,
    Framing,
    ProviderConfig,
    ProviderKind,
    framing_for,
)
from bpstudio.schemas.streaming import StreamChunk, StreamFrame
from bpstudio.schemas.sync import SyncPhase, SyncState

__all__ = [
    "DEFAULT_BASE_URLS",
    "DEFAULT_KEY_ENVS",
    "Framing",
    "Message",
    "PROVIDER_MODELS",
    "ProviderConfig",
    "ProviderKind",
    "Role",
    "StreamChunk",
    "StreamFrame",
    "StudioConfig",
    "SyncPhase",
    "SyncState",
    "framing_for",
]
