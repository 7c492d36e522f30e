"""
raster.py: In-memory raster buffers and the decode/encode boundary.

A RasterBuffer wraps a Pillow image held in RGBA mode. Transforms never mutate
a buffer; each one returns a fresh buffer owned by the caller.
"""

import asyncio
import io
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

try:
    from pillow_heif import register_heif_opener

    register_heif_opener()
except ImportError:
    pass

from ..errors import DecodeError, GeometryError
from ..utils.log_utils import get_logger

logger = get_logger(__name__)

OUTPUT_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned region in buffer-pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return max(self.width, 0) * max(self.height, 0)

    def fits_within(self, width: int, height: int) -> bool:
        """True if the rectangle lies entirely inside a width x height buffer."""
        return (
            self.x >= 0
            and self.y >= 0
            and self.right <= width
            and self.bottom <= height
        )

    def clamp(self, width: int, height: int) -> "Rectangle":
        """Intersect with the bounds of a width x height buffer."""
        x0 = min(max(self.x, 0), width)
        y0 = min(max(self.y, 0), height)
        x1 = min(max(self.right, 0), width)
        y1 = min(max(self.bottom, 0), height)
        return Rectangle(x0, y0, max(x1 - x0, 0), max(y1 - y0, 0))

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


class RasterBuffer:
    """Owned RGBA pixel grid with explicit dimensions."""

    def __init__(self, image: Image.Image):
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        self.image = image

    @classmethod
    def new(cls, width: int, height: int, color: Tuple[int, int, int, int] = (0, 0, 0, 0)) -> "RasterBuffer":
        if width <= 0 or height <= 0:
            raise GeometryError(f"Cannot allocate a {width}x{height} buffer")
        return cls(Image.new("RGBA", (width, height), color))

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterBuffer":
        """Build a buffer from an H x W x 4 uint8 array."""
        if array.ndim != 3 or array.shape[2] != 4:
            raise GeometryError(f"Expected an HxWx4 array, got shape {array.shape}")
        return cls(Image.fromarray(np.ascontiguousarray(array, dtype=np.uint8)))

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    def to_array(self) -> np.ndarray:
        """Return a copy of the pixels as an H x W x 4 uint8 array."""
        return np.array(self.image, dtype=np.uint8)

    def copy(self) -> "RasterBuffer":
        return RasterBuffer(self.image.copy())

    def release(self) -> None:
        """Free the underlying pixel memory."""
        self.image.close()

    def __repr__(self) -> str:
        return f"RasterBuffer({self.width}x{self.height})"


@dataclass(frozen=True)
class EncodedImage:
    """Encoded output bytes handed to export collaborators."""

    data: bytes
    mime_type: str
    width: int
    height: int


def decode_bytes(data: bytes, mime_type: str = "") -> RasterBuffer:
    """Decode raw file bytes into an RGBA buffer.

    Raises:
        DecodeError: If the bytes are empty, unreadable or corrupt.
    """
    if not data:
        raise DecodeError("Failed to load image: empty file")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            raster = RasterBuffer(img.convert("RGBA"))
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Failed to load image ({mime_type or 'unknown type'}): {e}") from e
    if raster.width == 0 or raster.height == 0:
        raise DecodeError("Failed to load image: zero-area raster")
    return raster


def encode_bytes(raster: RasterBuffer) -> EncodedImage:
    """Encode a buffer as PNG."""
    buffer = io.BytesIO()
    raster.image.save(buffer, format="PNG")
    return EncodedImage(
        data=buffer.getvalue(),
        mime_type=OUTPUT_MIME_TYPE,
        width=raster.width,
        height=raster.height,
    )


async def decode_image(data: bytes, mime_type: str = "") -> RasterBuffer:
    """Decode in the default executor so the event loop keeps running."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, decode_bytes, data, mime_type)


async def encode_png(raster: RasterBuffer) -> EncodedImage:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, encode_bytes, raster)
