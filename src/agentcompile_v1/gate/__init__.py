from .gatekeeper import DECISIONS_CATEGORY, PromotionGatekeeper

__all__ = ["DECISIONS_CATEGORY", "PromotionGatekeeper"]
