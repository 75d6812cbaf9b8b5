"""Content hashing for market change detection."""

import hashlib
from collections.abc import Mapping, Sequence
from datetime import datetime


def compute_content_hash(
    question: str,
    signals: Mapping[str, float | None],
    end_date: datetime | None = None,
    tags: Sequence[str] = (),
) -> str:
    """Compute a content hash over the fields that affect ranking.

    Two snapshots of the same market hash identically when nothing that
    feeds scoring or filtering changed, so re-ingesting an unchanged
    listing is reported as UNCHANGED and does not trigger a rebuild.

    Args:
        question: Market question (stripped before hashing).
        signals: Numeric signals (prices, volume, liquidity, ...).
        end_date: Resolution timestamp.
        tags: Ordered tags; order matters because the first tag is the
            market's category.

    Returns:
        First 16 characters of SHA-256 hash of normalized content.
    """
    parts = [f"question:{question.strip()}"]

    for key, value in sorted(signals.items()):
        parts.append(f"{key}:{'' if value is None else repr(float(value))}")

    if end_date:
        parts.append(f"end_date:{end_date.isoformat()}")

    parts.append(f"tags:{'|'.join(tags)}")

    content = "\n".join(parts)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]
