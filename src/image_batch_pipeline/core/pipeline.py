"""
pipeline.py: Run one source file through the canvas operations.

Order is fixed: expand -> rotate -> crop -> enhance. Each stage is applied only
when the settings or the item's edit request ask for it, and each applied stage
is logged as an Operation. Pixel work runs in the default executor so other
items on the event loop keep moving.
"""

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional, Tuple

from ..config import PipelineSettings
from ..utils.log_utils import get_logger
from .models import EditRequest, Operation, OperationType, SourceFile
from .raster import EncodedImage, RasterBuffer, decode_image, encode_png
from .transforms import crop, enhance, expand, rotate

logger = get_logger(__name__)


@dataclass
class PipelineOutcome:
    """Final raster, its encoded bytes, and the operations that produced it."""

    raster: RasterBuffer
    output: EncodedImage
    operations: Tuple[Operation, ...]


async def _run(func: Callable, *args) -> RasterBuffer:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args))


def _supersede(old: RasterBuffer, new: RasterBuffer, keep: Optional[RasterBuffer] = None) -> RasterBuffer:
    """Release `old` now that `new` replaces it, unless the caller still owns it."""
    if old is not keep and old is not new:
        old.release()
    return new


async def prepare_raster(
    raster: RasterBuffer,
    settings: PipelineSettings,
    edit: EditRequest,
) -> Tuple[RasterBuffer, List[Operation]]:
    """
    Apply the stages that precede cropping (expand, rotate).

    The input stays owned by the caller; intermediate buffers are released
    as soon as the next stage replaces them.
    """
    operations: List[Operation] = []
    current = raster

    if settings.expansion_enabled:
        current = _supersede(current, await _run(expand, current, settings.expansion_percentage), raster)
        operations.append(Operation.now(OperationType.EXPAND, percentage=settings.expansion_percentage))

    if edit.rotation % 360 != 0:
        current = _supersede(current, await _run(rotate, current, edit.rotation), raster)
        operations.append(Operation.now(OperationType.ROTATE, angle=edit.rotation))

    return current, operations


async def process_source(
    source: SourceFile,
    settings: PipelineSettings,
    edit: Optional[EditRequest] = None,
) -> PipelineOutcome:
    """
    Decode a source file, apply the configured operations and encode to PNG.

    Raises:
        DecodeError: If the source cannot be decoded
        GeometryError: If a transform receives invalid geometry
    """
    edit = edit or EditRequest()
    decoded = await decode_image(source.data, source.mime_type)
    raster, operations = await prepare_raster(decoded, settings, edit)
    raster = _supersede(decoded, raster)

    if edit.crop is not None:
        region = edit.crop.clamp(raster.width, raster.height)
        if region != edit.crop:
            logger.debug(f"Clamped crop {edit.crop} to {region} for {source.filename}")
        raster = _supersede(raster, await _run(crop, raster, region))
        operations.append(Operation.now(OperationType.CROP, **region.to_dict()))

    if settings.auto_enhance:
        raster = _supersede(raster, await _run(enhance, raster))
        operations.append(Operation.now(OperationType.ENHANCE))

    output = await encode_png(raster)
    logger.debug(
        f"Processed {source.filename}: {output.width}x{output.height}, "
        f"{len(operations)} operation(s)"
    )
    return PipelineOutcome(raster=raster, output=output, operations=tuple(operations))
