"""
batch.py: The ordered, capacity-bounded collection of batch items.

A Batch is a value: add/remove/clear/apply_result return a new Batch and leave
the original untouched. Duplicate flags are recomputed over every item
whenever membership changes.
"""

from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from ..config import MAX_BATCH_SIZE
from ..errors import CapacityExceededError
from ..utils.log_utils import get_logger
from .hashing import flag_duplicates
from .models import BatchItem, ItemStatus

logger = get_logger(__name__)


class Batch:
    """Insertion-ordered collection of BatchItems with unique ids."""

    def __init__(self, items: Iterable[BatchItem] = (), max_size: int = MAX_BATCH_SIZE):
        items = tuple(items)
        if len(items) > max_size:
            raise CapacityExceededError(len(items), max_size, max_size)
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise ValueError("Batch item ids must be unique")
        self._items: Tuple[BatchItem, ...] = tuple(flag_duplicates(items))
        self.max_size = max_size

    def _with_items(self, items: Iterable[BatchItem]) -> "Batch":
        return Batch(items, max_size=self.max_size)

    @property
    def items(self) -> Tuple[BatchItem, ...]:
        return self._items

    @property
    def remaining_capacity(self) -> int:
        return self.max_size - len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[BatchItem]:
        return iter(self._items)

    def __contains__(self, item_id: object) -> bool:
        return any(item.id == item_id for item in self._items)

    def __repr__(self) -> str:
        return f"Batch({len(self._items)}/{self.max_size})"

    def get(self, item_id: str) -> Optional[BatchItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def index(self, item_id: str) -> int:
        for i, item in enumerate(self._items):
            if item.id == item_id:
                return i
        raise KeyError(item_id)

    def count(self, status: ItemStatus) -> int:
        return sum(1 for item in self._items if item.status == status)

    def pending(self) -> List[BatchItem]:
        """Items eligible for the transform pass."""
        return [item for item in self._items if item.status != ItemStatus.COMPLETED]

    def unanalyzed(self) -> List[BatchItem]:
        """Completed items eligible for the analysis pass."""
        return [
            item for item in self._items
            if item.status == ItemStatus.COMPLETED and item.analysis is None
        ]

    def check_capacity(self, count: int) -> None:
        if count > self.remaining_capacity:
            raise CapacityExceededError(count, self.remaining_capacity, self.max_size)

    def add(self, items: Sequence[BatchItem]) -> "Batch":
        """Append items; rejects the whole call if it would exceed the cap."""
        self.check_capacity(len(items))
        return self._with_items(self._items + tuple(items))

    def remove(self, item_id: str) -> "Batch":
        """Drop an item and release its raster. Unknown ids are ignored."""
        kept = []
        for item in self._items:
            if item.id == item_id:
                item.release()
            else:
                kept.append(item)
        return self._with_items(kept)

    def clear(self) -> "Batch":
        """Release every item's raster and return an empty batch."""
        for item in self._items:
            item.release()
        return Batch(max_size=self.max_size)

    def apply_result(self, updated: BatchItem) -> "Batch":
        """Swap in a new version of an item; a no-op if it is no longer present."""
        if updated.id not in self:
            logger.debug(f"Dropping result for removed item {updated.id}")
            return self
        return self._with_items(
            updated if item.id == updated.id else item for item in self._items
        )

    def replace(self, item_id: str, items: Sequence[BatchItem]) -> "Batch":
        """Put `items` where `item_id` was, checking capacity for the net growth."""
        position = self.index(item_id)
        self.check_capacity(len(items) - 1)
        old = self._items[position]
        old.release()
        return self._with_items(self._items[:position] + tuple(items) + self._items[position + 1:])
