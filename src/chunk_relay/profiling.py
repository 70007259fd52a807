"""
Latency logging for chunk-relay.

Logs: "[LATENCY] api_call:gpt-4o: 1834.2ms"
"""

import time
import logging
import sys

logger = logging.getLogger(__name__)


class LatencyTracker:
    """
    Context manager to track latency for a code block.

    Usage:
        with LatencyTracker("process_file") as t:
            ...
        t.elapsed_ms
    """
    def __init__(self, phase_name: str = "operation"):
        self.phase_name = phase_name
        self.start_time: float = 0.0
        self.elapsed_ms: float = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        status = "" if exc_type is None else f" (failed: {exc_type.__name__})"
        logger.info(f"[LATENCY] {self.phase_name}: {self.elapsed_ms:.1f}ms{status}")


def enable_profiling(log_level=logging.INFO):
    """Send pipeline logs to stderr; stdout belongs to the stdio transport."""
    logging.basicConfig(
        level=log_level,
        stream=sys.stderr,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def disable_profiling():
    """Silence latency lines."""
    logger.setLevel(logging.WARNING)
