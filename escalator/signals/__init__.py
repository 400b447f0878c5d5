"""Signal extraction for Escalator."""

from escalator.signals.extractor import SignalExtractor

__all__ = ["SignalExtractor"]
