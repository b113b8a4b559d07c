from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..schemas import CompactionResult
from ..utils import atomic_write_bytes, canonical_dumps, now_ms
from .pattern_store import CATEGORIES, CHECKSUM_FIELD, envelope_checksum, parse_envelope

logger = logging.getLogger(__name__)

EntryValidator = Callable[[Dict[str, Any]], bool]

MS_PER_DAY = 24 * 60 * 60 * 1000


def compact_file(
    path: Path,
    *,
    max_age_ms: Optional[int] = None,
    now: Optional[int] = None,
    validator: Optional[EntryValidator] = None,
    max_entries: Optional[int] = None,
    verify_checksums: bool = True,
) -> CompactionResult:
    path = Path(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return CompactionResult(path=str(path))
    except OSError as exc:
        return CompactionResult(path=str(path), error=f"read_failed:{exc}")

    cutoff = None
    if max_age_ms is not None:
        cutoff = (now_ms() if now is None else now) - max_age_ms

    total = 0
    kept: List[bytes] = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        total += 1
        entry = parse_envelope(line, verify_checksum=verify_checksums)
        if entry is None:
            continue
        if cutoff is not None and entry.timestamp < cutoff:
            continue
        if validator is not None and not validator(entry.data):
            continue
        record = entry.to_record()
        record[CHECKSUM_FIELD] = envelope_checksum(entry.timestamp, entry.category, entry.data)
        kept.append(canonical_dumps(record) + b"\n")

    if max_entries is not None and len(kept) > max_entries:
        kept = kept[len(kept) - max_entries :]

    try:
        atomic_write_bytes(path, b"".join(kept))
    except OSError as exc:
        return CompactionResult(path=str(path), error=f"write_failed:{exc}")
    removed = total - len(kept)
    if removed:
        logger.info("compacted %s: retained=%d removed=%d", path, len(kept), removed)
    return CompactionResult(path=str(path), retained=len(kept), removed=removed)


def compact_store(
    root: Path,
    categories: Optional[Sequence[str]] = None,
    *,
    max_age_days: Optional[int] = None,
    now: Optional[int] = None,
    validators: Optional[Dict[str, EntryValidator]] = None,
    max_entries: Optional[int] = None,
) -> List[CompactionResult]:
    root = Path(root)
    validators = validators or {}
    max_age_ms = None if max_age_days is None else max_age_days * MS_PER_DAY
    results: List[CompactionResult] = []
    for category in categories or CATEGORIES:
        result = compact_file(
            root / f"{category}.jsonl",
            max_age_ms=max_age_ms,
            now=now,
            validator=validators.get(category),
            max_entries=max_entries,
        )
        if result.error:
            logger.warning("compaction failed for %s: %s", category, result.error)
        results.append(result)
    return results
