"""Signal-based work-progress classification with a budgeted hybrid pipeline."""

from .models import ClassificationScore, ProgressState, Signal, SignalType, WorkUnit
from .pipeline import CycleReport, ProgressPipeline
from .router import HybridRouter, RoutingResult

__all__ = [
    "ClassificationScore",
    "CycleReport",
    "HybridRouter",
    "ProgressPipeline",
    "ProgressState",
    "RoutingResult",
    "Signal",
    "SignalType",
    "WorkUnit",
]
