#!/usr/bin/env python3
"""
chunk-relay MCP Server

Relays large text files to a chat-completion API:
- Files over 80% of the model's context are split at subtitle, paragraph
  or line boundaries
- Chunks are sent strictly in order under the model's requests-per-minute cap
- Responses are joined in order and written to processed_<name>
- Progress is readable at any time, and a batch can be cancelled between chunks

Tools provided:
- relay_process_files: Start processing files/folders with a prompt
- relay_progress: Current batch progress
- relay_cancel: Cancel the running batch
- relay_reset: Reset progress tracking
- relay_models: Model catalog
- relay_status: Configuration and rate-limit status
- relay_prompts / relay_save_prompt / relay_delete_prompt: Saved prompt library
"""

import asyncio
import logging
import signal
import sys
import time
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    TextContent,
)

from .config import get_config, RelayConfig, ServerConfig
from .processor import FileProcessor
from .profiling import enable_profiling
from .service import close_default_processor, get_default_processor
from .handlers import (
    BatchJobRunner,
    handle_cancel,
    handle_delete_prompt,
    handle_list_prompts,
    handle_models,
    handle_process_files,
    handle_progress,
    handle_reset,
    handle_save_prompt,
    handle_status,
)

logger = logging.getLogger(__name__)


# Global instances
_relay_config: RelayConfig | None = None
_server_config: ServerConfig | None = None
_processor: FileProcessor | None = None
_runner: BatchJobRunner | None = None

# Shutdown flag for graceful termination
_shutdown_event: asyncio.Event | None = None


def get_instances() -> tuple[RelayConfig, ServerConfig, FileProcessor, BatchJobRunner]:
    """Get or create singleton instances."""
    global _relay_config, _server_config, _processor, _runner

    if _relay_config is None:
        _relay_config, _server_config = get_config()
        _processor = get_default_processor(_relay_config)
        _runner = BatchJobRunner(_processor)

    return _relay_config, _server_config, _processor, _runner


async def cleanup_resources() -> None:
    """Cleanup resources on shutdown."""
    if _processor is not None:
        try:
            await close_default_processor()
        except Exception as e:
            logger.error(f"Error closing file processor: {e}")


def _log_timing(operation: str, start_time: float, **extra: Any) -> None:
    elapsed_ms = int((time.time() - start_time) * 1000)
    logger.debug(f"[TOOL] {operation}: {elapsed_ms}ms {extra if extra else ''}")


def create_server() -> Server:
    """Create and configure the MCP server."""
    server = Server("chunk-relay")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return [
            Tool(
                name="relay_process_files",
                description=(
                    "Process .txt, .md and .srt files with a prompt through the configured "
                    "chat-completion API. Large files are split into chunks that fit the "
                    "model's context and the responses are joined in order. Runs in the "
                    "background; poll relay_progress."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "paths": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Files or folders to process (folders are not searched recursively)",
                        },
                        "prompt": {
                            "type": "string",
                            "description": "Instruction sent with every file or chunk",
                        },
                        "prompt_name": {
                            "type": "string",
                            "description": "Name of a saved prompt, used when prompt is not given",
                        },
                        "model": {
                            "type": "string",
                            "description": "Model key from relay_models. Default: DEFAULT_MODEL",
                        },
                        "output_dir": {
                            "type": "string",
                            "description": "Output folder. Default: <DATA_DIR>/outputs/<timestamp>",
                        },
                    },
                    "required": ["paths"],
                },
            ),
            Tool(
                name="relay_progress",
                description="Current batch progress: status, file and chunk counters, ETA, recent history.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="relay_cancel",
                description=(
                    "Cancel the running batch. The chunk in flight completes; "
                    "no further chunks or files are started."
                ),
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="relay_reset",
                description="Reset progress tracking to idle (not allowed while a batch runs).",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="relay_models",
                description="List known models with token limits, rate limits and costs.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="relay_status",
                description="Configuration problems, loaded models and per-model rate-limit usage.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="relay_prompts",
                description="List saved prompts.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="relay_save_prompt",
                description="Save a named prompt. An existing prompt with the same name is replaced.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Prompt name"},
                        "text": {"type": "string", "description": "Prompt text"},
                    },
                    "required": ["name", "text"],
                },
            ),
            Tool(
                name="relay_delete_prompt",
                description="Delete a saved prompt by name.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Prompt name"},
                    },
                    "required": ["name"],
                },
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool calls."""
        start_time = time.time()
        arguments = arguments or {}
        try:
            if name == "relay_process_files":
                result = await handle_process_files(arguments, get_instances)
            elif name == "relay_progress":
                result = await handle_progress(arguments, get_instances)
            elif name == "relay_cancel":
                result = await handle_cancel(arguments, get_instances)
            elif name == "relay_reset":
                result = await handle_reset(arguments, get_instances)
            elif name == "relay_models":
                result = await handle_models(arguments, get_instances)
            elif name == "relay_status":
                result = await handle_status(arguments, get_instances)
            elif name == "relay_prompts":
                result = await handle_list_prompts(arguments, get_instances)
            elif name == "relay_save_prompt":
                result = await handle_save_prompt(arguments, get_instances)
            elif name == "relay_delete_prompt":
                result = await handle_delete_prompt(arguments, get_instances)
            else:
                result = [TextContent(type="text", text=f"Unknown tool: {name}")]

            _log_timing(f"tool:{name}", start_time, success=True)
            return result

        except Exception as e:
            _log_timing(f"tool:{name}", start_time, success=False, error=str(e))
            return [TextContent(type="text", text=f"Error: {str(e)}")]

    return server


async def run_server():
    """Run the MCP server with graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    server = create_server()

    loop = asyncio.get_running_loop()

    def handle_shutdown(sig):
        logger.info(f"Received {sig.name}, shutting down gracefully...")
        _shutdown_event.set()

    # Register signal handlers (Unix only)
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: handle_shutdown(s))

    try:
        async with stdio_server() as (read_stream, write_stream):
            server_task = asyncio.create_task(
                server.run(
                    read_stream,
                    write_stream,
                    server.create_initialization_options(),
                )
            )

            done, pending = await asyncio.wait(
                [server_task, asyncio.create_task(_shutdown_event.wait())],
                return_when=asyncio.FIRST_COMPLETED,
            )

            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    finally:
        await cleanup_resources()


def main():
    """Main entry point."""
    enable_profiling()
    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
