from .ephemeral import EphemeralStore
from .session_observer import SESSIONS_CATEGORY, SessionObserver
from .tiering import TierEvaluator, TierScore, squash_observations

__all__ = [
    "EphemeralStore",
    "SESSIONS_CATEGORY",
    "SessionObserver",
    "TierEvaluator",
    "TierScore",
    "squash_observations",
]
