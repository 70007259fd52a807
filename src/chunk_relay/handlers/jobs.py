"""
Batch job handlers for the chunk-relay MCP server.

- handle_process_files: start a batch in the background
- handle_progress: progress snapshot for polling clients
- handle_cancel: cooperative cancellation
- handle_reset: reset progress between batches
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable

from mcp.types import TextContent

from ..batch import BatchResult, collect_input_files, output_folder_name, process_batch
from ..errors import ReadWriteError
from ..processor import FileProcessor
from ..prompts import PromptLibrary

logger = logging.getLogger(__name__)


# Input validation constants
MAX_PROMPT_LENGTH = 50_000
MAX_PATHS_COUNT = 100
MAX_PATH_LENGTH = 4096


def _text(payload: dict[str, Any]) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


def validate_path(path: str) -> tuple[bool, str]:
    """Validate a file path for safety."""
    if not path:
        return False, "Empty path"

    if len(path) > MAX_PATH_LENGTH:
        return False, f"Path too long ({len(path)} > {MAX_PATH_LENGTH})"

    if '\x00' in path:
        return False, "Path contains null bytes"

    return True, ""


class BatchJobRunner:
    """
    Runs at most one batch at a time as a background task.

    The batch worker and the tool handlers share one event loop, so progress
    and cancel calls are served while the worker waits on the API.
    """

    def __init__(self, processor: FileProcessor):
        self.processor = processor
        self._task: asyncio.Task | None = None
        self.last_result: BatchResult | None = None
        self.last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        files: list[Path],
        output_dir: Path,
        prompt: str,
        model: str | None,
    ) -> asyncio.Task:
        if self.running:
            raise RuntimeError("A batch is already being processed")

        self.last_result = None
        self.last_error = None
        self._task = asyncio.create_task(self._run(files, output_dir, prompt, model))
        return self._task

    async def _run(self, files: list[Path], output_dir: Path, prompt: str, model: str | None) -> None:
        try:
            self.last_result = await process_batch(self.processor, files, output_dir, prompt, model)
        except Exception as e:
            # A failure outside a single file (e.g. output folder not writable)
            logger.exception("[BATCH] Batch aborted")
            self.last_error = f"{type(e).__name__}: {e}"

    async def wait(self) -> BatchResult | None:
        if self._task is not None:
            await self._task
        return self.last_result


async def handle_process_files(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_process_files tool call."""
    config, _, _, runner = get_instances()

    prompt = arguments.get("prompt")
    prompt_name = arguments.get("prompt_name")
    if (not isinstance(prompt, str) or not prompt.strip()) and prompt_name:
        try:
            saved = await PromptLibrary(config.prompts_path).get(str(prompt_name))
        except ReadWriteError as e:
            return _text({"success": False, "error": str(e)})
        if saved is None:
            return _text({"success": False, "error": f'Prompt "{prompt_name}" not found'})
        prompt = saved.text
    if not isinstance(prompt, str) or not prompt.strip():
        return _text({"success": False, "error": "prompt is required"})
    if len(prompt) > MAX_PROMPT_LENGTH:
        return _text({"success": False, "error": f"prompt too long ({len(prompt)} > {MAX_PROMPT_LENGTH})"})

    paths = arguments.get("paths") or []
    if not isinstance(paths, list) or not paths:
        return _text({"success": False, "error": "paths must be a non-empty list"})
    if len(paths) > MAX_PATHS_COUNT:
        return _text({"success": False, "error": f"Too many paths ({len(paths)} > {MAX_PATHS_COUNT})"})

    for path in paths:
        is_valid, error = validate_path(str(path))
        if not is_valid:
            return _text({"success": False, "error": f"Invalid path {path!r}: {error}"})

    if runner.running:
        return _text({"success": False, "error": "A batch is already being processed"})

    collected = collect_input_files(paths, config.allowed_extensions)
    if not collected.files:
        return _text({
            "success": False,
            "error": "No files to process. Allowed types: " + ", ".join(sorted(config.allowed_extensions)),
            "skipped": collected.skipped,
        })

    model = arguments.get("model") or None
    output_dir = Path(arguments.get("output_dir") or config.outputs_dir / output_folder_name())

    runner.start(collected.files, output_dir, prompt, model)

    return _text({
        "success": True,
        "message": f"Processing {len(collected.files)} files; poll relay_progress for status",
        "outputDir": str(output_dir),
        "model": model or config.default_model,
        "files": [f.name for f in collected.files],
        "skipped": collected.skipped,
    })


async def handle_progress(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_progress tool call."""
    _, _, processor, runner = get_instances()

    progress = processor.tracker.snapshot()
    progress["batchRunning"] = runner.running
    if runner.last_result is not None:
        progress["lastBatch"] = runner.last_result.to_dict()
    if runner.last_error is not None:
        progress["lastBatchError"] = runner.last_error
    return _text(progress)


async def handle_cancel(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_cancel tool call."""
    _, _, processor, _ = get_instances()

    cancelled = processor.tracker.cancel()
    return _text({
        "success": cancelled,
        "message": "Processing cancelled" if cancelled else "Nothing is being processed",
        "status": processor.tracker.status.value,
    })


async def handle_reset(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_reset tool call."""
    _, _, processor, runner = get_instances()

    if runner.running:
        return _text({"success": False, "error": "Cannot reset while a batch is being processed"})

    processor.tracker.reset()
    return _text({"success": True, "status": processor.tracker.status.value})
