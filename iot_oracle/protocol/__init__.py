"""Action block wire protocol."""

from iot_oracle.protocol.aggregator import AggregatorSnapshot, StreamAggregator
from iot_oracle.protocol.extractor import ExtractionResult, extract_all, extract_block

__all__ = [
    "AggregatorSnapshot",
    "StreamAggregator",
    "ExtractionResult",
    "extract_all",
    "extract_block",
]
