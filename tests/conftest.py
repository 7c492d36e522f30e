"""
Pytest configuration and shared fixtures for image-batch-pipeline tests.

Images are generated in memory with Pillow so the tests need no fixture files.
"""

import io

import pytest
from PIL import Image, ImageDraw

from image_batch_pipeline.api import AnalysisClient
from image_batch_pipeline.core.models import SourceFile
from image_batch_pipeline.core.raster import RasterBuffer

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)


def make_image(width, height, color=WHITE, boxes=()):
    """
    Build an RGBA image with optional filled boxes.

    Args:
        width: Image width in pixels
        height: Image height in pixels
        color: Background RGBA fill
        boxes: Iterable of (x, y, w, h, rgba) boxes drawn on top

    Returns:
        PIL Image in RGBA mode
    """
    image = Image.new("RGBA", (width, height), color)
    draw = ImageDraw.Draw(image)
    for x, y, w, h, fill in boxes:
        draw.rectangle([x, y, x + w - 1, y + h - 1], fill=fill)
    return image


def make_png(width, height, color=WHITE, boxes=()) -> bytes:
    buffer = io.BytesIO()
    make_image(width, height, color, boxes).save(buffer, format="PNG")
    return buffer.getvalue()


def make_source(name, width=20, height=20, color=WHITE, boxes=()) -> SourceFile:
    return SourceFile(filename=name, data=make_png(width, height, color, boxes), mime_type="image/png")


class FakeAnalysisClient(AnalysisClient):
    """Analysis client that answers from memory instead of the network."""

    def __init__(self, response='{"description": "ok", "confidence": 90}', fail_for=(), prompts=None):
        self.response = response
        self.fail_for = set(fail_for)
        self.requests = []
        self.on_send = None
        super().__init__(api_key="test-key", prompts=prompts)

    def _validate_api_key(self):
        pass

    def _get_model_name(self):
        return "fake-model"

    async def _send(self, request, prompt):
        self.requests.append((request, prompt))
        if self.on_send:
            self.on_send(request)
        if request.image_base64 in self.fail_for:
            raise ConnectionError("connection refused")
        return self.response


@pytest.fixture
def scan_with_square():
    """100x100 white scan with a 20x20 black square at (40, 40)."""
    return RasterBuffer(make_image(100, 100, WHITE, [(40, 40, 20, 20, BLACK)]))


@pytest.fixture
def gradient_buffer():
    """
    Provide a 100x60 buffer whose pixels all differ, for exact comparisons.

    Returns:
        RasterBuffer with red varying by column and green by row
    """
    image = Image.new("RGBA", (100, 60))
    image.putdata([(x * 2, y * 4, (x + y) % 256, 255) for y in range(60) for x in range(100)])
    return RasterBuffer(image)


@pytest.fixture
def fake_client():
    return FakeAnalysisClient()
