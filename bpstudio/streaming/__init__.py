"""Turn-level stream processing: delta aggregation and blueprint extraction."""

from bpstudio.streaming.aggregator import DeltaAggregator
from bpstudio.streaming.extractor import (
    BlueprintExtractor,
    find_final_document,
    find_streaming_candidate,
)

__all__ = [
    "BlueprintExtractor",
    "DeltaAggregator",
    "find_final_document",
    "find_streaming_candidate",
]
