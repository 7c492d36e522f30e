#!/usr/bin/env python3
"""
export.py: Build the per-item artefacts handed to export collaborators.

Provides smart filenames derived from the analysis, a flat metadata mapping,
and the ProcessingResult record written to results.json.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..api.models import Analysis, ParsedAnalysis
from ..utils.log_utils import get_logger
from .models import BatchItem, Operation

logger = get_logger(__name__)

SOFTWARE_NAME = "image-batch-pipeline"
MAX_BASENAME_LENGTH = 100

Scalar = Union[str, int, float, bool]

_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def _squash(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _clean_description(description: str, limit: int) -> str:
    return _squash(_NON_WORD.sub(" ", description))[:limit]


def _split_extension(filename: str) -> tuple:
    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        return filename, "jpg"
    return stem, ext


def _finish_filename(parts: Sequence[str], extension: str) -> str:
    base = _squash(_INVALID_FILENAME_CHARS.sub(" ", " ".join(p for p in parts if p)))
    if len(base) > MAX_BASENAME_LENGTH:
        base = base[:MAX_BASENAME_LENGTH].strip()
    return f"{base}.{extension}"


def generate_smart_filename(original_filename: str, analysis: Analysis) -> str:
    """Filename built from the analysis, keeping the original extension."""
    stem, extension = _split_extension(original_filename)
    details = analysis.collectible_details

    if details is not None:
        parts = [details.year, details.country, details.type, details.denomination]
        if analysis.description:
            parts.append(_clean_description(analysis.description, 50))
    elif analysis.objects:
        parts = analysis.objects[:3]
    else:
        parts = [f"analyzed-{stem}"]

    filename = _finish_filename([p for p in parts if p], extension)
    if filename == f".{extension}":
        return _finish_filename([f"analyzed-{stem}"], extension)
    return filename


def generate_collectible_filename(original_filename: str, analysis: Analysis) -> str:
    """Detailed collectible filename with condition and value range."""
    details = analysis.collectible_details
    if details is None:
        return generate_smart_filename(original_filename, analysis)

    _, extension = _split_extension(original_filename)
    parts = [details.year, details.country, details.type, details.denomination]
    if details.condition:
        parts.append(f"({details.condition})")
    value_range = analysis.estimated_value_range
    if value_range is not None and (value_range.min > 0 or value_range.max > 0):
        parts.append(f"~${value_range.min:g}-{value_range.max:g}")
    if analysis.description:
        parts.append(_clean_description(analysis.description, 30))
    return _finish_filename([p for p in parts if p], extension)


def new_filename_for(item: BatchItem) -> str:
    if item.analysis is None:
        return item.filename
    if item.analysis.collectible_details is not None:
        return generate_collectible_filename(item.filename, item.analysis)
    return generate_smart_filename(item.filename, item.analysis)


def _operations_summary(operations: Sequence[Operation]) -> str:
    return "; ".join(
        f"{op.type.value}: {json.dumps(dict(op.params), separators=(',', ':'))}" for op in operations
    )


def create_metadata(analysis: Optional[Analysis], operations: Sequence[Operation],
                    filename: str) -> Dict[str, Scalar]:
    """
    Flat metadata mapping for embedding or export.

    Only scalar values are emitted; lists are joined with ", " and missing
    fields are dropped.
    """
    metadata: Dict[str, Any] = {
        "Processing Timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "Image Filename": filename,
        "Software": SOFTWARE_NAME,
    }
    if analysis is not None:
        metadata.update({
            "Analysis Confidence": analysis.confidence,
            "Description": analysis.description,
            "Objects Identified": ", ".join(analysis.objects),
            "Categories": ", ".join(analysis.categories),
            "Colors": ", ".join(analysis.colors),
        })
        details = analysis.collectible_details
        if details is not None:
            metadata.update({
                "Collectible Type": details.type,
                "Era": details.era,
                "Country": details.country,
                "Year": details.year,
                "Denomination": details.denomination,
                "Condition": details.condition,
                "Rarity": details.rarity,
                "Estimated Value": details.estimated_value,
                "Authentication Markers": ", ".join(details.authentication),
                "Grading": details.grading,
                "Historical Significance": details.historical_significance,
                "Special Features": ", ".join(details.special_features) if details.special_features else None,
            })
        if isinstance(analysis, ParsedAnalysis):
            if analysis.condition_assessment:
                metadata["Condition Assessment"] = analysis.condition_assessment
            if analysis.authenticity_markers:
                metadata["Authenticity Markers"] = ", ".join(analysis.authenticity_markers)
        if analysis.estimated_value_range is not None:
            metadata["Estimated Value Min"] = analysis.estimated_value_range.min
            metadata["Estimated Value Max"] = analysis.estimated_value_range.max

    metadata["Processing Operations"] = _operations_summary(operations)
    return {key: value for key, value in metadata.items() if value is not None}


@dataclass
class ProcessingResult:
    """Final state of one item as consumed by export integrations."""

    id: str
    original_filename: str
    new_filename: str
    analysis: Analysis
    operations: List[Operation] = field(default_factory=list)
    metadata: Mapping[str, Scalar] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "originalFilename": self.original_filename,
            "newFilename": self.new_filename,
            "analysis": self.analysis.to_wire(),
            "operations": [op.to_dict() for op in self.operations],
            "metadata": dict(self.metadata),
        }


def build_result(item: BatchItem) -> ProcessingResult:
    """Export record for an item; unanalyzed items get an empty analysis."""
    return ProcessingResult(
        id=item.id,
        original_filename=item.filename,
        new_filename=new_filename_for(item),
        analysis=item.analysis if item.analysis is not None else ParsedAnalysis(),
        operations=list(item.operations),
        metadata=create_metadata(item.analysis, item.operations, item.filename),
    )


def write_results(results: Sequence[ProcessingResult], path: Path) -> Path:
    """Write results as a JSON list."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    logger.info(f"Wrote {len(results)} result(s) to {path}")
    return path
