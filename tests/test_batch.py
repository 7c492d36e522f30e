"""
Unit tests for batch membership, duplicate flagging and item transitions.
"""

from dataclasses import replace
from unittest.mock import Mock

import pytest

from image_batch_pipeline.api.models import ParsedAnalysis
from image_batch_pipeline.core.batch import Batch
from image_batch_pipeline.core.hashing import compute_content_hash, flag_duplicates
from image_batch_pipeline.core.models import (
    BatchItem,
    EditRequest,
    ItemStatus,
    Operation,
    OperationType,
    SourceFile,
)
from image_batch_pipeline.core.raster import EncodedImage
from image_batch_pipeline.errors import CapacityExceededError, InvalidTransitionError


def item(item_id, content_hash=None, status=ItemStatus.PENDING, raster=None):
    return BatchItem(
        id=item_id,
        source=SourceFile(filename=f"{item_id}.jpg", data=b"\x00"),
        content_hash=content_hash,
        status=status,
        raster=raster,
    )


def flags(items):
    return [i.is_duplicate for i in items]


class TestContentHash:
    """Tests for compute_content_hash."""

    def test_sha256_hex(self):
        assert compute_content_hash(b"abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_same_bytes_same_hash(self):
        assert compute_content_hash(b"x" * 10) == compute_content_hash(b"x" * 10)
        assert compute_content_hash(b"x") != compute_content_hash(b"y")


class TestFlagDuplicates:
    """Tests for flag_duplicates."""

    def test_first_occurrence_is_not_flagged(self):
        items = [item("1", "A"), item("2", "A"), item("3", "B"), item("4", "A")]
        assert flags(flag_duplicates(items)) == [False, True, False, True]

    def test_items_without_hash_are_never_flagged(self):
        items = [item("1"), item("2"), item("3", "A")]
        assert flags(flag_duplicates(items)) == [False, False, False]

    def test_stale_flag_is_cleared(self):
        stale = replace(item("1", "A"), is_duplicate=True)
        assert flags(flag_duplicates([stale])) == [False]


class TestBatch:
    """Tests for Batch."""

    def test_flags_recomputed_on_remove(self):
        """Removing the first occurrence promotes the next one."""
        batch = Batch([item("1", "A"), item("2", "A"), item("3", "B"), item("4", "A")])

        batch = batch.remove("1")

        assert [i.id for i in batch] == ["2", "3", "4"]
        assert flags(batch) == [False, False, True]

    def test_add_over_capacity_changes_nothing(self):
        batch = Batch([item("1"), item("2")], max_size=3)

        with pytest.raises(CapacityExceededError) as exc_info:
            batch.add([item("3"), item("4")])

        assert exc_info.value.requested == 2
        assert exc_info.value.available == 1
        assert exc_info.value.limit == 3
        assert [i.id for i in batch] == ["1", "2"]

    def test_add_up_to_capacity(self):
        batch = Batch(max_size=3).add([item("1"), item("2"), item("3")])
        assert len(batch) == 3
        assert batch.remaining_capacity == 0

    def test_operations_return_new_batch(self):
        batch = Batch([item("1")])
        grown = batch.add([item("2")])

        assert len(batch) == 1
        assert len(grown) == 2

    def test_ids_must_be_unique(self):
        with pytest.raises(ValueError):
            Batch([item("1"), item("1")])

    def test_remove_releases_raster(self):
        raster = Mock()
        batch = Batch([item("1", raster=raster), item("2")])

        batch.remove("1")

        raster.release.assert_called_once()

    def test_clear_releases_everything(self):
        rasters = [Mock(), Mock()]
        batch = Batch([item("1", raster=rasters[0]), item("2", raster=rasters[1])])

        cleared = batch.clear()

        assert len(cleared) == 0
        assert cleared.max_size == batch.max_size
        for raster in rasters:
            raster.release.assert_called_once()

    def test_apply_result_for_removed_item_is_noop(self):
        batch = Batch([item("1"), item("2")])
        stale = batch.get("1").mark_processing()

        batch = batch.remove("1").apply_result(stale)

        assert [i.id for i in batch] == ["2"]

    def test_apply_result_replaces_in_place(self):
        batch = Batch([item("1"), item("2"), item("3")])
        batch = batch.apply_result(batch.get("2").mark_processing())

        assert [i.id for i in batch] == ["1", "2", "3"]
        assert batch.get("2").status == ItemStatus.PROCESSING
        assert batch.count(ItemStatus.PENDING) == 2

    def test_replace_keeps_position(self):
        batch = Batch([item("1"), item("2"), item("3")], max_size=4)

        batch = batch.replace("2", [item("2a"), item("2b")])

        assert [i.id for i in batch] == ["1", "2a", "2b", "3"]

    def test_replace_checks_net_growth(self):
        batch = Batch([item("1"), item("2")], max_size=3)

        with pytest.raises(CapacityExceededError):
            batch.replace("1", [item("a"), item("b"), item("c")])

    def test_eligibility_views(self):
        done = item("2", status=ItemStatus.COMPLETED)
        batch = Batch([item("1"), done, item("3", status=ItemStatus.ERROR)])

        assert [i.id for i in batch.pending()] == ["1", "3"]
        assert [i.id for i in batch.unanalyzed()] == ["2"]


class TestItemTransitions:
    """Tests for the BatchItem state machine."""

    def test_happy_path(self):
        output = EncodedImage(b"png", "image/png", 1, 1)
        ops = (Operation.now(OperationType.ENHANCE),)

        done = item("1").mark_processing().complete(Mock(), output, ops)

        assert done.status == ItemStatus.COMPLETED
        assert done.output is output
        assert done.operations == ops

    def test_failure_keeps_message(self):
        failed = item("1").mark_processing().fail("Failed to load image")

        assert failed.status == ItemStatus.ERROR
        assert failed.error == "Failed to load image"
        assert failed.is_terminal

    def test_retry_clears_error(self):
        retried = item("1").mark_processing().fail("boom").reset()

        assert retried.status == ItemStatus.PENDING
        assert retried.error is None

    @pytest.mark.parametrize("transition", [
        lambda i: i.complete(Mock(), Mock(), ()),
        lambda i: i.fail("x"),
        lambda i: i.start_analysis(),
    ])
    def test_invalid_from_pending(self, transition):
        with pytest.raises(InvalidTransitionError):
            transition(item("1"))

    def test_completed_cannot_restart(self):
        done = item("1", status=ItemStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            done.mark_processing()

    def test_analysis_never_changes_status(self):
        done = item("1", status=ItemStatus.COMPLETED)

        analyzing = done.start_analysis()
        failed = analyzing.fail_analysis("timeout")
        finished = analyzing.finish_analysis(ParsedAnalysis(description="ok"))

        assert analyzing.analyzing
        assert failed.status == ItemStatus.COMPLETED
        assert failed.analysis_error == "timeout"
        assert not failed.analyzing
        assert finished.analysis.description == "ok"

    def test_reset_releases_raster(self):
        raster = Mock()
        done = item("1", status=ItemStatus.COMPLETED, raster=raster)

        fresh = done.reset()

        raster.release.assert_called_once()
        assert fresh.raster is None
        assert fresh.operations == ()

    def test_operation_timestamp_is_utc(self):
        op = Operation.now(OperationType.EXPAND, percentage=10)

        assert op.timestamp.endswith("Z")
        assert op.to_dict()["params"] == {"percentage": 10}

    def test_edit_request_is_empty(self):
        assert EditRequest().is_empty
        assert EditRequest(rotation=360).is_empty
        assert not EditRequest(rotation=5).is_empty
