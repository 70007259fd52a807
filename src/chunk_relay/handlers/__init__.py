"""
Request Handlers for the chunk-relay MCP server.

- jobs: batch processing, progress, cancel, reset
- catalog: model catalog and server status
- prompts: saved prompt library
"""

from .catalog import (
    handle_models,
    handle_status,
)
from .prompts import (
    handle_delete_prompt,
    handle_list_prompts,
    handle_save_prompt,
)
from .jobs import (
    BatchJobRunner,
    handle_cancel,
    handle_process_files,
    handle_progress,
    handle_reset,
)

__all__ = [
    # Job handlers
    "BatchJobRunner",
    "handle_process_files",
    "handle_progress",
    "handle_cancel",
    "handle_reset",
    # Catalog handlers
    "handle_models",
    "handle_status",
    # Prompt handlers
    "handle_list_prompts",
    "handle_save_prompt",
    "handle_delete_prompt",
]
