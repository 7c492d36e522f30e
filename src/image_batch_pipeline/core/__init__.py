"""
Core functionality: canvas transforms, detection, batch state and scheduling.
"""

from .batch import Batch
from .blob_detector import detect_blobs, detect_with_settings
from .export import ProcessingResult, build_result, write_results
from .hashing import compute_content_hash, flag_duplicates
from .models import BatchItem, EditRequest, ItemStatus, Operation, OperationType, SourceFile
from .pipeline import PipelineOutcome, process_source
from .raster import EncodedImage, RasterBuffer, Rectangle, decode_image, encode_png
from .scheduler import BatchScheduler, PassSummary
from .transforms import crop, enhance, expand, rotate

__all__ = [
    "Batch",
    "BatchItem",
    "BatchScheduler",
    "EditRequest",
    "EncodedImage",
    "ItemStatus",
    "Operation",
    "OperationType",
    "PassSummary",
    "PipelineOutcome",
    "ProcessingResult",
    "RasterBuffer",
    "Rectangle",
    "SourceFile",
    "build_result",
    "compute_content_hash",
    "crop",
    "decode_image",
    "detect_blobs",
    "detect_with_settings",
    "encode_png",
    "enhance",
    "expand",
    "flag_duplicates",
    "process_source",
    "rotate",
    "write_results",
]
