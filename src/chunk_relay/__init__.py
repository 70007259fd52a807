"""
chunk-relay

Relays text files (.txt, .md, .srt) to a chat-completion API with a user
prompt, splitting files that do not fit the model's context window.

Pipeline:
- Model registry: token limit and requests-per-minute per model
- Rate limiter: sliding 60 second window per model
- Chunker: 1 token ≈ 4 chars, 80% of the context per chunk, breaks at
  subtitle blocks, blank lines or line ends
- File processor: chunks relayed strictly in order, failures folded into
  the output, results joined and written
- Progress tracker: snapshot readable at any time, cooperative cancel
"""

__version__ = "1.0.0"

from .server import main, create_server
from .processor import FileProcessor
from .progress import ProgressTracker, ProcessingStatus
from .batch import process_batch, collect_input_files
from .service import (
    process_file,
    set_total_files,
    reset_progress,
    cancel_processing,
    get_progress,
)

__all__ = [
    "main",
    "create_server",
    "FileProcessor",
    "ProgressTracker",
    "ProcessingStatus",
    "process_batch",
    "collect_input_files",
    "process_file",
    "set_total_files",
    "reset_progress",
    "cancel_processing",
    "get_progress",
]
