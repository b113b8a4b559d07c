from .bridge import FeedbackBridge, SignalBus
from .drift import FEEDBACK_CATEGORY, DriftMonitor, fold_drift_counters

__all__ = [
    "FEEDBACK_CATEGORY",
    "DriftMonitor",
    "FeedbackBridge",
    "SignalBus",
    "fold_drift_counters",
]
