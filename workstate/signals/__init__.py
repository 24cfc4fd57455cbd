"""Signal extraction and aggregation."""

from .aggregator import SignalAggregator
from .extractor import SignalExtractor

__all__ = ["SignalAggregator", "SignalExtractor"]
