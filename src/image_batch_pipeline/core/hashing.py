"""
Content hashing and duplicate flagging for uploads.

The hash covers the raw uploaded bytes, so duplicates mean "the same file was
uploaded twice", not "two outputs look alike".
"""

import hashlib
from dataclasses import replace
from typing import Iterable, List, Set

from .models import BatchItem


def compute_content_hash(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw file bytes."""
    return hashlib.sha256(data).hexdigest()


def flag_duplicates(items: Iterable[BatchItem]) -> List[BatchItem]:
    """
    Recompute duplicate flags over a whole batch in insertion order.

    The first item with a given hash is never flagged; every later item with
    the same hash is. Items without a hash pass through unflagged. Must be run
    over the entire batch after any membership change so that removing a first
    occurrence promotes the next one.
    """
    seen: Set[str] = set()
    flagged: List[BatchItem] = []
    for item in items:
        if not item.content_hash:
            duplicate = False
        elif item.content_hash in seen:
            duplicate = True
        else:
            seen.add(item.content_hash)
            duplicate = False
        flagged.append(item if item.is_duplicate == duplicate else replace(item, is_duplicate=duplicate))
    return flagged
