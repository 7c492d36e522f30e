"""
Tests for smart filenames, metadata and the results file.
"""

import json

from image_batch_pipeline.api.models import CollectibleDetails, ParsedAnalysis, RawTextAnalysis, ValueRange
from image_batch_pipeline.core.export import (
    MAX_BASENAME_LENGTH,
    SOFTWARE_NAME,
    ProcessingResult,
    create_metadata,
    generate_collectible_filename,
    generate_smart_filename,
    write_results,
)
from image_batch_pipeline.core.models import Operation, OperationType

OPERATIONS = [
    Operation(type=OperationType.EXPAND, params={"percentage": 10}, timestamp="2024-01-01T00:00:00.000Z"),
    Operation(type=OperationType.ENHANCE, params={}, timestamp="2024-01-01T00:00:01.000Z"),
]


def jenny():
    return ParsedAnalysis(
        description="Inverted Jenny airmail!",
        confidence=92,
        collectible_details=CollectibleDetails(
            type="stamp", year="1918", country="USA", denomination="24c", condition="Fine",
        ),
        estimated_value_range=ValueRange(min=100, max=250),
    )


class TestSmartFilename:
    """Tests for generate_smart_filename."""

    def test_uses_first_three_objects(self):
        analysis = ParsedAnalysis(objects=["Stamp", "Eagle", "Blue", "Extra"])
        assert generate_smart_filename("scan.jpg", analysis) == "Stamp Eagle Blue.jpg"

    def test_fallback_keeps_original_stem(self):
        assert generate_smart_filename("scan.jpg", ParsedAnalysis()) == "analyzed-scan.jpg"

    def test_raw_text_analysis(self):
        assert generate_smart_filename("scan.png", RawTextAnalysis(description="??")) == "analyzed-scan.png"

    def test_invalid_characters_are_replaced(self):
        analysis = ParsedAnalysis(objects=["AC/DC", "Who?"])
        assert generate_smart_filename("x.png", analysis) == "AC DC Who.png"

    def test_length_is_capped(self):
        analysis = ParsedAnalysis(objects=["x" * 80, "y" * 80])

        name = generate_smart_filename("scan.jpg", analysis)

        assert name.endswith(".jpg")
        assert len(name[:-4]) == MAX_BASENAME_LENGTH

    def test_missing_extension_defaults_to_jpg(self):
        assert generate_smart_filename("scan", ParsedAnalysis(objects=["Card"])) == "Card.jpg"


class TestCollectibleFilename:
    """Tests for generate_collectible_filename."""

    def test_full_details(self):
        assert generate_collectible_filename("scan.jpg", jenny()) == (
            "1918 USA stamp 24c (Fine) ~$100-250 Inverted Jenny airmail.jpg"
        )

    def test_without_details_falls_back(self):
        analysis = ParsedAnalysis(objects=["Postcard"])
        assert generate_collectible_filename("scan.jpg", analysis) == "Postcard.jpg"


class TestMetadata:
    """Tests for create_metadata."""

    def test_unanalyzed_item(self):
        metadata = create_metadata(None, OPERATIONS, "scan.png")

        assert metadata["Image Filename"] == "scan.png"
        assert metadata["Software"] == SOFTWARE_NAME
        assert metadata["Processing Operations"] == 'expand: {"percentage":10}; enhance: {}'
        assert "Description" not in metadata

    def test_missing_fields_are_dropped(self):
        metadata = create_metadata(jenny(), [], "scan.png")

        assert metadata["Country"] == "USA"
        assert metadata["Estimated Value Max"] == 250
        assert "Grading" not in metadata
        assert all(value is not None for value in metadata.values())

    def test_values_are_scalars(self):
        analysis = ParsedAnalysis(objects=["a", "b"], colors=["red"])

        metadata = create_metadata(analysis, OPERATIONS, "scan.png")

        assert metadata["Objects Identified"] == "a, b"
        assert all(isinstance(v, (str, int, float, bool)) for v in metadata.values())


class TestProcessingResult:
    """Tests for ProcessingResult and write_results."""

    def test_to_dict_shape(self):
        result = ProcessingResult(
            id="abc123def",
            original_filename="scan.jpg",
            new_filename="Stamp.jpg",
            analysis=jenny(),
            operations=OPERATIONS,
            metadata={"Software": SOFTWARE_NAME},
        )

        data = result.to_dict()

        assert data["originalFilename"] == "scan.jpg"
        assert data["newFilename"] == "Stamp.jpg"
        assert data["analysis"]["collectibleDetails"]["year"] == "1918"
        assert data["operations"][0] == {
            "type": "expand",
            "params": {"percentage": 10},
            "timestamp": "2024-01-01T00:00:00.000Z",
        }

    def test_write_results(self, tmp_path):
        result = ProcessingResult("id1", "a.png", "a.png", ParsedAnalysis())

        path = write_results([result], tmp_path / "out" / "results.json")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert [r["id"] for r in data] == ["id1"]
