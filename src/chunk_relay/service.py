"""
Process-wide default FileProcessor and the functions bound to it.

These are the calls collaborators (the MCP server, scripts) use:
process_file, set_total_files, reset_progress, cancel_processing, get_progress.
"""

import os
from typing import Any

from .config import RelayConfig
from .processor import FileProcessor


_default_processor: FileProcessor | None = None


def get_default_processor(config: RelayConfig | None = None) -> FileProcessor:
    """Get or create the process-wide FileProcessor."""
    global _default_processor

    if _default_processor is None:
        _default_processor = FileProcessor(config or RelayConfig())

    return _default_processor


async def close_default_processor() -> None:
    global _default_processor

    if _default_processor is not None:
        await _default_processor.close()
        _default_processor = None


async def process_file(
    input_path: str | os.PathLike,
    output_path: str | os.PathLike,
    prompt: str,
    model: str | None = None,
) -> str:
    return await get_default_processor().process_file(input_path, output_path, prompt, model)


def set_total_files(total: int) -> None:
    get_default_processor().tracker.set_total_files(total)


def reset_progress() -> None:
    get_default_processor().tracker.reset()


def cancel_processing() -> bool:
    return get_default_processor().tracker.cancel()


def get_progress() -> dict[str, Any]:
    return get_default_processor().tracker.snapshot()
