"""
Batch runner for chunk-relay.

Collects input files (explicit files or whole folders), announces the batch
to the progress tracker and feeds files to the FileProcessor one by one.
A failed file is recorded and the batch moves on; cancellation stops the
batch at the next file boundary.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from .errors import FileProcessingError
from .processor import FileProcessor

logger = logging.getLogger(__name__)


OUTPUT_PREFIX = "processed_"


@dataclass
class FileResult:
    """Outcome of one file in a batch."""
    original_name: str
    success: bool
    duration_ms: int
    output_path: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalName": self.original_name,
            "processedName": os.path.basename(self.output_path) if self.output_path else None,
            "outputPath": self.output_path,
            "success": self.success,
            "duration": self.duration_ms,
            "error": self.error,
        }


@dataclass
class CollectedInputs:
    """Files accepted for a batch plus what was skipped and why."""
    files: list[Path] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class BatchResult:
    """Result of a batch run."""
    output_dir: str
    results: list[FileResult] = field(default_factory=list)
    cancelled: bool = False
    duration_ms: int = 0

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outputDir": self.output_dir,
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "cancelled": self.cancelled,
            "duration": self.duration_ms,
            "results": [r.to_dict() for r in self.results],
        }


def output_folder_name(now: datetime | None = None) -> str:
    """Timestamped folder name: YYYY-MM-DD_HH-MM-SS."""
    return (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")


def collect_input_files(paths: Iterable[str | os.PathLike], allowed_extensions: set[str]) -> CollectedInputs:
    """
    Expand paths into the list of files to process.

    Folders contribute their direct children (sorted by name); only files
    whose extension is in allowed_extensions are kept. Outputs are named
    after the input's base name, so later files repeating a name are skipped.
    """
    collected = CollectedInputs()
    allowed = {ext.lower() for ext in allowed_extensions}
    seen_names: set[str] = set()

    def add(file_path: Path) -> None:
        if file_path.name in seen_names:
            logger.info(f"[DEDUPLICATION] Skipping duplicate file: {file_path}")
            collected.skipped.append(f"{file_path} (duplicate name)")
            return
        seen_names.add(file_path.name)
        collected.files.append(file_path)

    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            for child in sorted(path.iterdir()):
                if child.is_file() and child.suffix.lower() in allowed:
                    add(child)
        elif path.is_file():
            if path.suffix.lower() in allowed:
                add(path)
            else:
                collected.skipped.append(f"{path} (extension not allowed)")
        else:
            collected.skipped.append(f"{path} (not found)")

    return collected


async def process_batch(
    processor: FileProcessor,
    input_paths: list[Path],
    output_dir: str | os.PathLike,
    prompt: str,
    model: str | None = None,
) -> BatchResult:
    """Process input_paths sequentially into output_dir."""
    start = time.perf_counter()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    unique: dict[str, Path] = {}
    for input_path in map(Path, input_paths):
        if input_path.name in unique:
            logger.info(f"[DEDUPLICATION] Skipping duplicate file: {input_path}")
            continue
        unique[input_path.name] = input_path
    input_paths = list(unique.values())

    batch = BatchResult(output_dir=str(output_dir))
    processor.tracker.set_total_files(len(input_paths))
    logger.info(f"[BATCH] {len(input_paths)} files -> {output_dir} (model={model or 'default'})")

    for i, input_path in enumerate(input_paths, 1):
        if processor.tracker.is_cancelled:
            logger.info("[BATCH] Processing cancelled by user")
            batch.cancelled = True
            break

        input_path = Path(input_path)
        output_path = output_dir / f"{OUTPUT_PREFIX}{input_path.name}"
        file_start = time.perf_counter()
        logger.info(f"[BATCH {i}/{len(input_paths)}] {input_path.name}")

        try:
            await processor.process_file(input_path, output_path, prompt, model)
            batch.results.append(FileResult(
                original_name=input_path.name,
                success=True,
                duration_ms=int((time.perf_counter() - file_start) * 1000),
                output_path=str(output_path),
            ))
        except FileProcessingError as e:
            logger.error(f"[BATCH {i}/{len(input_paths)}] {input_path.name}: {e}")
            batch.results.append(FileResult(
                original_name=input_path.name,
                success=False,
                duration_ms=int((time.perf_counter() - file_start) * 1000),
                error=str(e),
            ))

    if processor.tracker.is_cancelled:
        batch.cancelled = True

    batch.duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        f"[BATCH] Done in {batch.duration_ms}ms: {batch.success_count} succeeded, "
        f"{batch.fail_count} failed{' (cancelled)' if batch.cancelled else ''}"
    )
    return batch
