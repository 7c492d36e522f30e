"""
Canvas transforms: expand, crop, rotate and enhance.

Every function takes a RasterBuffer and returns a new one; the input is left
untouched. Invalid geometry raises GeometryError (or OutOfBoundsError for
crops), which the scheduler records against the single item being processed.
"""

import math
from typing import Tuple

import numpy as np
from PIL import Image

from ..errors import GeometryError, OutOfBoundsError
from .raster import RasterBuffer, Rectangle

BACKGROUND_COLOR: Tuple[int, int, int, int] = (255, 255, 255, 255)
TRANSPARENT: Tuple[int, int, int, int] = (0, 0, 0, 0)

# Fixed enhancement profile
BRIGHTNESS = 1.1
CONTRAST = 1.15
SATURATION = 1.2
LUMA_WEIGHTS = np.array([0.2989, 0.5870, 0.1140], dtype=np.float64)

# Trig residue below this is treated as zero when sizing rotated buffers
_EPSILON_DIGITS = 9


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _check_buffer(buffer: RasterBuffer) -> None:
    if buffer.width <= 0 or buffer.height <= 0:
        raise GeometryError(f"Zero-area buffer {buffer.width}x{buffer.height}")


def expanded_size(width: int, height: int, percentage: float) -> Tuple[int, int]:
    """Dimensions of a width x height buffer expanded by `percentage`."""
    ratio = 1 + percentage / 100
    return _round_half_up(width * ratio), _round_half_up(height * ratio)


def rotated_size(width: int, height: int, angle_degrees: float) -> Tuple[int, int]:
    """Bounding box of a width x height buffer rotated by `angle_degrees`."""
    theta = math.radians(angle_degrees)
    cos_t = abs(math.cos(theta))
    sin_t = abs(math.sin(theta))
    new_w = round(width * cos_t + height * sin_t, _EPSILON_DIGITS)
    new_h = round(width * sin_t + height * cos_t, _EPSILON_DIGITS)
    return max(math.ceil(new_w), 1), max(math.ceil(new_h), 1)


def expand(buffer: RasterBuffer, percentage: float,
           background: Tuple[int, int, int, int] = BACKGROUND_COLOR) -> RasterBuffer:
    """
    Pad a buffer on all sides with a solid background.

    The output is scaled by (1 + percentage/100) on both axes and the source is
    drawn centred, offset by half the size delta.

    Args:
        buffer: Source buffer
        percentage: Amount to grow by, >= 0
        background: RGBA fill for the new margin

    Returns:
        A new, larger buffer (a plain copy when percentage is 0)
    """
    _check_buffer(buffer)
    if not math.isfinite(percentage) or percentage < 0:
        raise GeometryError(f"Expansion percentage must be a finite value >= 0, got {percentage}")
    if percentage == 0:
        return buffer.copy()

    new_w, new_h = expanded_size(buffer.width, buffer.height, percentage)
    out = RasterBuffer.new(new_w, new_h, background)
    offset = ((new_w - buffer.width) // 2, (new_h - buffer.height) // 2)
    out.image.alpha_composite(buffer.image, dest=offset)
    return out


def crop(buffer: RasterBuffer, rect: Rectangle) -> RasterBuffer:
    """
    Copy a rectangular sub-region into a new buffer.

    The rectangle must already lie inside the buffer; callers clamp with
    Rectangle.clamp first.

    Raises:
        GeometryError: If the rectangle has no area
        OutOfBoundsError: If the rectangle is not fully contained
    """
    _check_buffer(buffer)
    if rect.width <= 0 or rect.height <= 0:
        raise GeometryError(f"Crop rectangle has no area: {rect}")
    if not rect.fits_within(buffer.width, buffer.height):
        raise OutOfBoundsError(
            f"Crop rectangle {rect} exceeds buffer {buffer.width}x{buffer.height}"
        )
    return RasterBuffer(buffer.image.crop((rect.x, rect.y, rect.right, rect.bottom)))


def rotate(buffer: RasterBuffer, angle_degrees: float) -> RasterBuffer:
    """
    Rotate clockwise by `angle_degrees` into a buffer big enough for every corner.

    The origin is moved to the centre of the new buffer, the coordinate system
    is rotated, and the source is drawn centred on the origin. Uncovered
    corners stay transparent. A zero angle (mod 360) returns an exact copy.
    """
    _check_buffer(buffer)
    if not math.isfinite(angle_degrees):
        raise GeometryError(f"Rotation angle must be finite, got {angle_degrees}")
    if angle_degrees % 360 == 0:
        return buffer.copy()

    w, h = buffer.size
    new_w, new_h = rotated_size(w, h, angle_degrees)
    theta = math.radians(angle_degrees)
    cos_t, sin_t = math.cos(theta), math.sin(theta)

    # Inverse mapping: output (x', y') -> source (x, y)
    cx, cy = w / 2, h / 2
    ncx, ncy = new_w / 2, new_h / 2
    coeffs = (
        cos_t, sin_t, cx - cos_t * ncx - sin_t * ncy,
        -sin_t, cos_t, cy + sin_t * ncx - cos_t * ncy,
    )
    rotated = buffer.image.transform(
        (new_w, new_h),
        Image.Transform.AFFINE,
        coeffs,
        resample=Image.Resampling.BICUBIC,
        fillcolor=TRANSPARENT,
    )
    return RasterBuffer(rotated)


def _enhance_lut() -> np.ndarray:
    """Brightness then contrast for every 8-bit input value, unclamped."""
    values = np.arange(256, dtype=np.float64)
    return (values * BRIGHTNESS - 128.0) * CONTRAST + 128.0


_ENHANCE_LUT = _enhance_lut()


def enhance(buffer: RasterBuffer) -> RasterBuffer:
    """
    Apply the fixed brightness/contrast/saturation profile in one pass.

    Brightness and contrast come from a precomputed lookup table. Saturation
    pushes each channel away from the perceptual luminance of the adjusted
    pixel. Channels are clamped to [0, 255]; alpha is preserved.
    """
    _check_buffer(buffer)
    pixels = buffer.to_array()
    rgb = _ENHANCE_LUT[pixels[..., :3]]
    luma = rgb @ LUMA_WEIGHTS
    rgb = luma[..., np.newaxis] + (rgb - luma[..., np.newaxis]) * SATURATION
    pixels[..., :3] = np.rint(np.clip(rgb, 0.0, 255.0)).astype(np.uint8)
    return RasterBuffer.from_array(pixels)
