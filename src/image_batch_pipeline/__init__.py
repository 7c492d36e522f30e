"""
Image Batch Pipeline

Batch canvas processing for scanned collectibles: expand, rotate, crop and
enhance uploads in memory, split multi-item scans, flag duplicate uploads, and
hand the results to AI analysis and export.
"""

__version__ = "0.1.0"

from .config import PipelineSettings, load_settings
from .core import (
    Batch,
    BatchItem,
    BatchScheduler,
    EditRequest,
    ItemStatus,
    RasterBuffer,
    Rectangle,
    SourceFile,
)
from .api import KnowledgeProvider, PromptBuilder, get_client

__all__ = [
    "Batch",
    "BatchItem",
    "BatchScheduler",
    "EditRequest",
    "ItemStatus",
    "KnowledgeProvider",
    "PipelineSettings",
    "PromptBuilder",
    "RasterBuffer",
    "Rectangle",
    "SourceFile",
    "get_client",
    "load_settings",
]
