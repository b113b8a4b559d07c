from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import RetentionPolicy
from ..schemas import CompactionResult
from ..store.compaction import MS_PER_DAY, compact_file


def prune_sessions(
    path: Path, policy: Optional[RetentionPolicy] = None, now: Optional[int] = None
) -> CompactionResult:
    policy = policy or RetentionPolicy()
    return compact_file(
        path,
        max_age_ms=policy.max_age_days * MS_PER_DAY,
        now=now,
        max_entries=policy.max_entries,
    )
