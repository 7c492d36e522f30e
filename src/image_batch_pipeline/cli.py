#!/usr/bin/env python3
"""
Command-line entry point for image-batch-pipeline.

Loads images into a batch, runs the transform pass (optionally splitting
multi-item scans first), optionally runs AI analysis, then writes the
processed PNGs and results.json to the output directory.
"""

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Iterator, List, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .api import AnalysisMode, KnowledgeProvider, PromptBuilder, get_client
from .config import load_settings
from .core.export import write_results
from .core.models import EditRequest, ItemStatus, SourceFile
from .core.scheduler import BatchScheduler, PassSummary
from .errors import PipelineError
from .utils.log_utils import configure_logging, get_logger

logger = get_logger(__name__)

IMAGE_EXTS = {'.jpg', '.jpeg', '.png', '.heic', '.heif', '.webp', '.bmp', '.tif', '.tiff'}
API_CHOICES = ['remote', 'gemini', 'openai', 'claude']


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Batch-process scanned images and optionally analyze them with AI')
    parser.add_argument('inputs', nargs='+', help='Image files or directories to add to the batch')
    parser.add_argument('-o', '--output-dir',
                        default='processed',
                        help='Directory for processed images and results.json (default: processed)')
    parser.add_argument('--config', help='JSON settings file')
    parser.add_argument('--concurrency', type=int, help='Items processed at once (default from settings: 3)')
    parser.add_argument('--expand', type=int, metavar='PCT',
                        help='Expand each image by PCT percent before cropping (0-50)')
    parser.add_argument('--no-enhance', action='store_true', help='Skip the automatic enhancement step')
    parser.add_argument('--rotate', type=float, default=0.0, metavar='DEG',
                        help='Rotate every image clockwise by DEG degrees')
    parser.add_argument('--auto-detect', action='store_true',
                        help='Split each scan into one image per detected item')
    parser.add_argument('--analyze', action='store_true', help='Run AI analysis on processed images')
    parser.add_argument('--api', choices=API_CHOICES, default='remote',
                        help='Analysis provider (default: remote)')
    parser.add_argument('--mode', choices=[m.value for m in AnalysisMode], default=AnalysisMode.GENERAL.value,
                        help='Analysis mode (default: general)')
    parser.add_argument('--log-level',
                        choices=['debug', 'info', 'warning', 'error', 'critical'],
                        default='info',
                        help='Set logging level (default: info)')
    return parser.parse_args(argv)


def iter_images(inputs: List[str]) -> Iterator[Path]:
    """Yield image files from the given paths, walking directories in sorted order."""
    for raw in inputs:
        path = Path(raw)
        if path.is_dir():
            for child in sorted(path.rglob('*')):
                if child.is_file() and child.suffix.lower() in IMAGE_EXTS and not child.name.startswith('._'):
                    yield child
        elif path.is_file():
            yield path
        else:
            logger.warning(f"Skipping missing path: {path}")


def load_source(path: Path) -> SourceFile:
    mime_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'
    return SourceFile(filename=path.name, data=path.read_bytes(), mime_type=mime_type)


def build_scheduler(args: argparse.Namespace) -> BatchScheduler:
    overrides = {'concurrency': args.concurrency}
    if args.expand is not None:
        overrides['expand_before_crop'] = args.expand > 0
        overrides['expansion_percentage'] = args.expand
    if args.no_enhance:
        overrides['auto_enhance'] = False
    settings = load_settings(args.config, **overrides)

    client = None
    if args.analyze:
        knowledge = KnowledgeProvider()
        knowledge.initialize()
        client = get_client(args.api, prompts=PromptBuilder(knowledge))
    return BatchScheduler(settings, analysis_client=client)


async def run_pass_with_progress(console: Console, scheduler: BatchScheduler, label: str, coro_factory) -> PassSummary:
    with Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{label}"),
        BarColumn(bar_width=None),
        TextColumn("({task.completed}/{task.total})"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task(label, total=None)

        def on_chunk(name: str, index: int, count: int) -> None:
            progress.update(task_id, total=count, completed=index + 1)

        scheduler.on_chunk_complete = on_chunk
        try:
            return await coro_factory()
        finally:
            scheduler.on_chunk_complete = None


def print_summary(console: Console, scheduler: BatchScheduler) -> None:
    table = Table(title="Batch summary")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    table.add_column("Operations")
    table.add_column("Notes")
    for item in scheduler.batch:
        size = f"{item.output.width}x{item.output.height}" if item.output else "-"
        ops = ", ".join(op.type.value for op in item.operations) or "-"
        notes = item.error or item.analysis_error or ("duplicate" if item.is_duplicate else "")
        style = "red" if item.status == ItemStatus.ERROR else None
        table.add_row(item.filename, item.status.value, size, ops, notes, style=style)
    console.print(table)


def write_outputs(scheduler: BatchScheduler, output_dir: Path) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    results = scheduler.results()
    used = set()
    for result in results:
        item = scheduler.batch.get(result.id)
        stem = Path(result.new_filename).stem
        name = f"{stem}.png"
        counter = 1
        while name in used:
            counter += 1
            name = f"{stem}-{counter}.png"
        used.add(name)
        (output_dir / name).write_bytes(item.output.data)
    write_results(results, output_dir / 'results.json')


async def cli_run(args: argparse.Namespace, console: Console) -> int:
    scheduler = build_scheduler(args)
    sources = [load_source(path) for path in iter_images(args.inputs)]
    if not sources:
        logger.error("No images found")
        return 1

    items = scheduler.add_files(sources)
    duplicates = [item.filename for item in scheduler.batch if item.is_duplicate]
    if duplicates:
        logger.warning(f"Duplicate uploads: {', '.join(duplicates)}")

    if args.rotate:
        for item in items:
            scheduler.set_edit(item.id, EditRequest(rotation=args.rotate))

    if args.auto_detect:
        for item in items:
            try:
                children = await scheduler.split_detected(item.id)
            except PipelineError as e:
                # left pending; the transform pass records the failure on the item
                logger.warning(f"Auto-detect skipped for {item.filename}: {e}")
                continue
            if children:
                logger.info(f"{item.filename}: {len(children)} item(s) detected")

    await run_pass_with_progress(console, scheduler, "Processing images...", scheduler.run_transform_pass)
    if args.analyze:
        await run_pass_with_progress(
            console, scheduler, "Analyzing images...",
            lambda: scheduler.run_analysis_pass(AnalysisMode(args.mode)),
        )

    write_outputs(scheduler, Path(args.output_dir))
    print_summary(console, scheduler)
    return 1 if scheduler.batch.count(ItemStatus.ERROR) else 0


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the image-batch command."""
    args = parse_args(argv)
    configure_logging(getattr(logging, args.log_level.upper()))
    console = Console()
    try:
        code = asyncio.run(cli_run(args, console))
    except PipelineError as e:
        logger.error(str(e))
        code = 2
    except ValueError as e:
        # missing API keys surface here from client construction
        logger.error(str(e))
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
