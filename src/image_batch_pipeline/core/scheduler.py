"""
scheduler.py: Drive a batch through the transform and analysis passes.

Both passes share one shape: eligible items are split into chunks of
`concurrency`, each chunk is marked as started, its work runs concurrently,
and the next chunk starts only after every item in the current one has
settled. Work functions return values; results are applied to the batch on
the coordinating task, so no locking is needed. A failure is recorded on its
own item and never stops the pass.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence

from ..api import AnalysisClient, AnalysisMode, AnalysisRequest
from ..api.models import Analysis
from ..config import PipelineSettings
from ..errors import AnalysisError, ConfigError
from ..utils.log_utils import get_logger
from .batch import Batch
from .blob_detector import detect_with_settings
from .export import ProcessingResult, build_result
from .hashing import compute_content_hash
from .models import BatchItem, EditRequest, ItemStatus, SourceFile, new_item_id
from .pipeline import PipelineOutcome, prepare_raster, process_source
from .raster import decode_image

logger = get_logger(__name__)

TRANSFORM_PASS = "transform"
ANALYSIS_PASS = "analysis"


@dataclass
class PassSummary:
    """Outcome counts for one scheduler pass."""

    name: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    elapsed: float = 0.0


def chunked(items: Sequence[Any], size: int) -> List[List[Any]]:
    """Split `items` into consecutive lists of at most `size`."""
    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class BatchScheduler:
    """
    Owns a Batch and runs its items through the pipeline with bounded concurrency.

    Callbacks can be attached to follow progress:
        on_item_update(item): after every state change of an item
        on_chunk_complete(pass_name, chunk_index, chunk_count): after each chunk settles
        on_pass_complete(summary): when a pass ends
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        analysis_client: Optional[AnalysisClient] = None,
        concurrency: Optional[int] = None,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.analysis_client = analysis_client
        self.concurrency = concurrency if concurrency is not None else self.settings.concurrency
        if self.concurrency < 1:
            raise ConfigError(f"Concurrency must be >= 1, got {self.concurrency}")
        self.batch = Batch(max_size=self.settings.max_batch_size)

        self.on_item_update: Optional[Callable[[BatchItem], None]] = None
        self.on_chunk_complete: Optional[Callable[[str, int, int], None]] = None
        self.on_pass_complete: Optional[Callable[[PassSummary], None]] = None

    # Batch membership

    def add_files(self, sources: Iterable[SourceFile]) -> List[BatchItem]:
        """
        Hash and add uploads as pending items.

        Raises:
            CapacityExceededError: If the batch cannot take all of them; nothing is added.
        """
        sources = list(sources)
        self.batch.check_capacity(len(sources))
        items = [
            BatchItem(id=new_item_id(), source=source, content_hash=compute_content_hash(source.data))
            for source in sources
        ]
        self.batch = self.batch.add(items)
        logger.info(f"Added {len(items)} image(s); batch holds {len(self.batch)}/{self.batch.max_size}")
        return [self.batch.get(item.id) for item in items]

    def remove(self, item_id: str) -> None:
        self.batch = self.batch.remove(item_id)

    def clear(self) -> None:
        """Release every raster and empty the batch, even mid-pass."""
        logger.info(f"Clearing {len(self.batch)} item(s)")
        self.batch = self.batch.clear()

    def retry(self, item_id: str) -> BatchItem:
        """Re-submit an errored item as a fresh pending item."""
        item = self._require(item_id)
        if item.status != ItemStatus.ERROR:
            raise ValueError(f"Only failed items can be retried; {item_id} is {item.status.value}")
        return self._update(item.reset())

    def set_edit(self, item_id: str, edit: EditRequest) -> BatchItem:
        """Attach a rotation/crop request; completed items are re-queued."""
        item = self._require(item_id)
        if item.status == ItemStatus.COMPLETED:
            item = item.reset()
        return self._update(item.with_edit(edit))

    def _require(self, item_id: str) -> BatchItem:
        item = self.batch.get(item_id)
        if item is None:
            raise KeyError(item_id)
        return item

    def _update(self, item: BatchItem) -> BatchItem:
        self.batch = self.batch.apply_result(item)
        stored = self.batch.get(item.id)
        if stored is not None and self.on_item_update:
            self.on_item_update(stored)
        return stored or item

    # Passes

    async def _run_pass(
        self,
        name: str,
        eligible: List[BatchItem],
        start: Callable[[BatchItem], BatchItem],
        work: Callable[[BatchItem], Awaitable[Any]],
        settle: Callable[[BatchItem, Any], BatchItem],
        is_in_flight: Callable[[BatchItem], bool],
    ) -> PassSummary:
        summary = PassSummary(name=name, total=len(eligible))
        started_at = time.time()
        chunks = chunked(eligible, self.concurrency)
        logger.info(
            f"Starting {name} pass over {len(eligible)} item(s) "
            f"in {len(chunks)} chunk(s) of up to {self.concurrency}"
        )

        for index, chunk in enumerate(chunks):
            started: List[BatchItem] = []
            for item in chunk:
                current = self.batch.get(item.id)
                if current is None:
                    summary.skipped += 1
                    continue
                started.append(self._update(start(current)))

            outcomes = await asyncio.gather(*(work(item) for item in started), return_exceptions=True)

            for item, outcome in zip(started, outcomes):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome
                current = self.batch.get(item.id)
                if current is None or not is_in_flight(current):
                    logger.debug(f"{item.filename} left the batch during the {name} pass; dropping result")
                    if isinstance(outcome, PipelineOutcome):
                        outcome.raster.release()
                    summary.skipped += 1
                    continue
                if isinstance(outcome, Exception):
                    logger.error(f"Failed {name} for {item.filename}: {outcome}")
                    summary.failed += 1
                else:
                    summary.succeeded += 1
                self._update(settle(current, outcome))

            if self.on_chunk_complete:
                self.on_chunk_complete(name, index, len(chunks))

        summary.elapsed = time.time() - started_at
        logger.info(
            f"Finished {name} pass: {summary.succeeded} succeeded, {summary.failed} failed, "
            f"{summary.skipped} skipped in {summary.elapsed:.2f}s"
        )
        if self.on_pass_complete:
            self.on_pass_complete(summary)
        return summary

    async def _transform(self, item: BatchItem) -> PipelineOutcome:
        logger.debug(f"Processing {item.filename}")
        return await process_source(item.source, self.settings, item.edit)

    @staticmethod
    def _settle_transform(item: BatchItem, outcome: Any) -> BatchItem:
        if isinstance(outcome, Exception):
            return item.fail(_describe(outcome))
        return item.complete(outcome.raster, outcome.output, outcome.operations)

    async def run_transform_pass(self) -> PassSummary:
        """Run every item that is not yet completed through the canvas pipeline."""
        return await self._run_pass(
            TRANSFORM_PASS,
            self.batch.pending(),
            start=lambda item: item.mark_processing(),
            work=self._transform,
            settle=self._settle_transform,
            is_in_flight=lambda item: item.status == ItemStatus.PROCESSING,
        )

    async def run_analysis_pass(self, mode: AnalysisMode = AnalysisMode.GENERAL) -> PassSummary:
        """
        Send every completed, unanalyzed item to the analysis client.

        A failed analysis is recorded in `analysis_error`; the item stays
        completed and keeps its processed output.
        """
        if self.analysis_client is None:
            raise ConfigError("No analysis client configured")
        mode = AnalysisMode(mode)

        async def analyze(item: BatchItem) -> Analysis:
            if item.output is None:
                raise AnalysisError(f"{item.filename} has no processed output to analyze")
            request = AnalysisRequest.from_bytes(item.output.data, item.output.mime_type, mode)
            return await self.analysis_client.analyze(request)

        def settle(item: BatchItem, outcome: Any) -> BatchItem:
            if isinstance(outcome, Exception):
                return item.fail_analysis(_describe(outcome))
            return item.finish_analysis(outcome)

        return await self._run_pass(
            ANALYSIS_PASS,
            self.batch.unanalyzed(),
            start=lambda item: item.start_analysis(),
            work=analyze,
            settle=settle,
            is_in_flight=lambda item: item.status == ItemStatus.COMPLETED and item.analyzing,
        )

    # Auto-detection

    async def split_detected(self, item_id: str) -> List[BatchItem]:
        """
        Replace a multi-item scan with one pending child per detected blob.

        Detection runs on the scan after the pre-crop stages (expand, rotate),
        so each blob rectangle is a crop in the same coordinates the pipeline
        will use. Returns the children, or [] if nothing was found.

        Raises:
            CapacityExceededError: If the children would not fit; the batch is unchanged.
        """
        item = self._require(item_id)
        raster = await decode_image(item.source.data, item.source.mime_type)
        prepared, _ = await prepare_raster(raster, self.settings, EditRequest(rotation=item.edit.rotation))
        loop = asyncio.get_running_loop()
        try:
            rects = await loop.run_in_executor(None, detect_with_settings, prepared, self.settings.detector)
        finally:
            if prepared is not raster:
                prepared.release()
            raster.release()

        if not rects:
            logger.info(f"No items detected in {item.filename}")
            return []
        if item_id not in self.batch:
            logger.debug(f"{item.filename} was removed during detection")
            return []

        children = [
            BatchItem(
                id=new_item_id(),
                source=item.source,
                edit=EditRequest(rotation=item.edit.rotation, crop=rect),
                parent_id=item.id,
            )
            for rect in rects
        ]
        self.batch = self.batch.replace(item_id, children)
        logger.info(f"Split {item.filename} into {len(children)} item(s)")
        return [self.batch.get(child.id) for child in children]

    # Export

    def results(self) -> List[ProcessingResult]:
        """Export artefacts for every completed item, in batch order."""
        return [build_result(item) for item in self.batch if item.status == ItemStatus.COMPLETED]
