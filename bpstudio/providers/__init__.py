"""Blueprint Studio provider layer.

Decodes vendor response bodies into frames, maps frames to text deltas,
and streams replies over HTTP for the first configured provider.
"""

from bpstudio.providers.client import StreamingProvider, stream_chat
from bpstudio.providers.dialects import extract_delta
from bpstudio.providers.framing import (
    BalancedJsonFrameDecoder,
    LineFrameDecoder,
    decoder_for,
    iter_frames,
)
from bpstudio.providers.registry import (
    active_provider,
    load_providers,
    load_studio_config,
)
from bpstudio.providers.requests import PreparedRequest, build_request

__all__ = [
    "BalancedJsonFrameDecoder",
    "LineFrameDecoder",
    "PreparedRequest",
    "StreamingProvider",
    "active_provider",
    "build_request",
    "decoder_for",
    "extract_delta",
    "iter_frames",
    "load_providers",
    "load_studio_config",
    "stream_chat",
]
