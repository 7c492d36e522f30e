"""
Batch item state and the operation log.

Items are immutable; every transition returns a new item built with
dataclasses.replace. Only the scheduler calls the transition helpers.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ..api.models import Analysis
from ..errors import InvalidTransitionError
from .raster import EncodedImage, RasterBuffer, Rectangle

Scalar = Union[int, float, str, bool]


class OperationType(str, Enum):
    EXPAND = "expand"
    CROP = "crop"
    ENHANCE = "enhance"
    ROTATE = "rotate"


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Operation:
    """One entry in an item's append-only operation log."""

    type: OperationType
    params: Mapping[str, Scalar]
    timestamp: str

    @classmethod
    def now(cls, type: OperationType, **params: Scalar) -> "Operation":
        stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return cls(type=type, params=dict(params), timestamp=stamp)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "params": dict(self.params), "timestamp": self.timestamp}

    def summary(self) -> str:
        params = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.type.value}: {{{params}}}"


@dataclass(frozen=True)
class SourceFile:
    """An uploaded file exactly as received."""

    filename: str
    data: bytes = field(repr=False)
    mime_type: str = "image/jpeg"


@dataclass(frozen=True)
class EditRequest:
    """Manual edits applied before crop/enhance: fine rotation and a crop box."""

    rotation: float = 0.0
    crop: Optional[Rectangle] = None

    @property
    def is_empty(self) -> bool:
        return self.rotation % 360 == 0 and self.crop is None


def new_item_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass(frozen=True)
class BatchItem:
    """The unit of work tracked by a Batch."""

    id: str
    source: SourceFile
    status: ItemStatus = ItemStatus.PENDING
    operations: Tuple[Operation, ...] = ()
    content_hash: Optional[str] = None
    is_duplicate: bool = False
    edit: EditRequest = EditRequest()
    raster: Optional[RasterBuffer] = field(default=None, repr=False, compare=False)
    output: Optional[EncodedImage] = field(default=None, repr=False, compare=False)
    analysis: Optional[Analysis] = None
    analyzing: bool = False
    error: Optional[str] = None
    analysis_error: Optional[str] = None
    parent_id: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.source.filename

    @property
    def is_terminal(self) -> bool:
        return self.status in (ItemStatus.COMPLETED, ItemStatus.ERROR)

    def _require(self, *allowed: ItemStatus) -> None:
        if self.status not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise InvalidTransitionError(
                f"Item {self.id} is {self.status.value}; expected one of: {names}"
            )

    def mark_processing(self) -> "BatchItem":
        self._require(ItemStatus.PENDING, ItemStatus.ERROR, ItemStatus.PROCESSING)
        return replace(self, status=ItemStatus.PROCESSING, error=None)

    def complete(self, raster: RasterBuffer, output: EncodedImage,
                 operations: Tuple[Operation, ...]) -> "BatchItem":
        self._require(ItemStatus.PROCESSING)
        return replace(
            self,
            status=ItemStatus.COMPLETED,
            raster=raster,
            output=output,
            operations=self.operations + tuple(operations),
            error=None,
        )

    def fail(self, message: str) -> "BatchItem":
        self._require(ItemStatus.PROCESSING)
        return replace(self, status=ItemStatus.ERROR, error=message)

    def start_analysis(self) -> "BatchItem":
        self._require(ItemStatus.COMPLETED)
        return replace(self, analyzing=True, analysis_error=None)

    def finish_analysis(self, analysis: Analysis) -> "BatchItem":
        self._require(ItemStatus.COMPLETED)
        return replace(self, analyzing=False, analysis=analysis, analysis_error=None)

    def fail_analysis(self, message: str) -> "BatchItem":
        self._require(ItemStatus.COMPLETED)
        return replace(self, analyzing=False, analysis_error=message)

    def with_edit(self, edit: EditRequest) -> "BatchItem":
        return replace(self, edit=edit)

    def reset(self) -> "BatchItem":
        """Fresh pending copy for a retry: same source and edits, no results."""
        self.release()
        return replace(
            self,
            status=ItemStatus.PENDING,
            operations=(),
            raster=None,
            output=None,
            analysis=None,
            analyzing=False,
            error=None,
            analysis_error=None,
        )

    def release(self) -> None:
        """Free the item's raster memory."""
        if self.raster is not None:
            self.raster.release()
