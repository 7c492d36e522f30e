"""
blob_detector.py: Find discrete items on a light scan background.

Used to split a scan holding several collectibles into one crop per item. The
search runs on a coarse grid rather than every pixel, so the boxes are
approximate seeds for the editor, not pixel-exact outlines.
"""

from collections import deque
from typing import List, Optional

import numpy as np

from ..config import DetectorSettings
from ..utils.log_utils import get_logger
from .raster import RasterBuffer, Rectangle

logger = get_logger(__name__)


def binarize(buffer: RasterBuffer, threshold: int) -> np.ndarray:
    """Boolean mask of pixels darker than `threshold` (grayscale average)."""
    rgb = buffer.to_array()[..., :3].astype(np.uint16)
    gray = rgb.sum(axis=2) / 3.0
    return gray < threshold


def detect_blobs(
    buffer: RasterBuffer,
    threshold: int = 200,
    step: int = 10,
    padding: int = 10,
    min_size: int = 20,
) -> List[Rectangle]:
    """
    Return a bounding rectangle for each connected foreground blob.

    Args:
        buffer: Scan to search
        threshold: Pixels with a grayscale average below this are foreground
        step: Grid spacing in pixels; only every step-th pixel is sampled
        padding: Margin added around each blob, clamped to the buffer
        min_size: Blobs narrower or shorter than this (before padding) are noise

    Returns:
        Rectangles in raster order of each blob's first grid cell.
    """
    if step < 1:
        raise ValueError(f"step must be >= 1, got {step}")
    if not 0 <= threshold <= 256:
        raise ValueError(f"threshold must be within 0..256, got {threshold}")
    if padding < 0 or min_size < 0:
        raise ValueError("padding and min_size must be >= 0")

    width, height = buffer.size
    grid = binarize(buffer, threshold)[::step, ::step]
    rows, cols = grid.shape
    visited = np.zeros_like(grid, dtype=bool)
    blobs: List[Rectangle] = []

    for gy in range(rows):
        for gx in range(cols):
            if not grid[gy, gx] or visited[gy, gx]:
                continue

            min_x = max_x = gx
            min_y = max_y = gy
            visited[gy, gx] = True
            queue = deque([(gx, gy)])
            while queue:
                cx, cy = queue.popleft()
                min_x, max_x = min(min_x, cx), max(max_x, cx)
                min_y, max_y = min(min_y, cy), max(max_y, cy)
                for nx, ny in ((cx + 1, cy), (cx - 1, cy), (cx, cy + 1), (cx, cy - 1)):
                    if 0 <= nx < cols and 0 <= ny < rows and grid[ny, nx] and not visited[ny, nx]:
                        visited[ny, nx] = True
                        queue.append((nx, ny))

            x0, y0 = min_x * step, min_y * step
            x1 = min((max_x + 1) * step, width)
            y1 = min((max_y + 1) * step, height)
            if x1 - x0 < min_size or y1 - y0 < min_size:
                logger.debug(f"Skipping {x1 - x0}x{y1 - y0} blob at ({x0}, {y0}) as noise")
                continue

            padded = Rectangle(x0 - padding, y0 - padding, x1 - x0 + 2 * padding, y1 - y0 + 2 * padding)
            blobs.append(padded.clamp(width, height))

    logger.debug(f"Detected {len(blobs)} blob(s) in {width}x{height} buffer")
    return blobs


def detect_with_settings(buffer: RasterBuffer, settings: Optional[DetectorSettings] = None) -> List[Rectangle]:
    """Run detect_blobs with tunables taken from DetectorSettings."""
    settings = settings or DetectorSettings()
    return detect_blobs(
        buffer,
        threshold=settings.threshold,
        step=settings.step,
        padding=settings.padding,
        min_size=settings.min_size,
    )
