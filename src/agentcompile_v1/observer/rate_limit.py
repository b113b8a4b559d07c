from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, Optional

from ..config import RateLimitPolicy

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000


class SessionRateLimiter:
    def __init__(self, policy: Optional[RateLimitPolicy] = None) -> None:
        self.policy = policy or RateLimitPolicy()
        self._per_session: Dict[str, int] = {}
        self._recent: Deque[int] = deque()

    def allow(self, session_id: str, now: int) -> bool:
        while self._recent and self._recent[0] <= now - HOUR_MS:
            self._recent.popleft()
        if self._per_session.get(session_id, 0) >= self.policy.max_per_session:
            logger.debug("session %s exceeded %d writes", session_id, self.policy.max_per_session)
            return False
        if len(self._recent) >= self.policy.max_per_hour:
            logger.debug("hourly observation limit %d reached", self.policy.max_per_hour)
            return False
        self._per_session[session_id] = self._per_session.get(session_id, 0) + 1
        self._recent.append(now)
        return True
