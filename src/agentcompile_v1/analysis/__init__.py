from .detector import PromotionDetector, composite_score
from .determinism import DeterminismAnalyzer, group_executions, score_group

__all__ = [
    "DeterminismAnalyzer",
    "PromotionDetector",
    "composite_score",
    "group_executions",
    "score_group",
]
