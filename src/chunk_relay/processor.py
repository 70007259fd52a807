"""
File processor for chunk-relay.

Processes one file end to end:
1. Track the file and mark the batch as processing
2. Read the input
3. Decide between one call and chunked processing (80% of the model context)
4. Relay chunks strictly in order, folding per-chunk failures into the output
5. Join the results and write the output
6. Record the outcome in the progress history

Files and chunks are processed sequentially by a single worker; the only
suspension points are rate-limit waits inside the API client.
"""

import logging
import os
from pathlib import Path

import aiofiles

from .api_client import CompletionClient
from .chunking import build_chunks, estimate_tokens, max_tokens_per_chunk, needs_chunking
from .config import RelayConfig
from .errors import ConfigurationError, FileProcessingError, ReadWriteError
from .models import ModelRegistry
from .profiling import LatencyTracker
from .progress import HistoryEntry, ProcessingStatus, ProgressTracker, now_ms
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def chunk_prompt(prompt: str, index: int, total: int) -> str:
    return f"{prompt}\n\n[This is chunk {index} of {total} from the original file]"


def chunk_error_marker(error: Exception) -> str:
    return f"[Error processing this chunk: {error}]"


class FileProcessor:
    """Composes chunker, API client and progress tracker for one file at a time."""

    def __init__(
        self,
        config: RelayConfig | None = None,
        registry: ModelRegistry | None = None,
        tracker: ProgressTracker | None = None,
        rate_limiter: RateLimiter | None = None,
        client: CompletionClient | None = None,
    ):
        self.config = config or RelayConfig()
        self.registry = registry or ModelRegistry.from_file(
            self.config.models_path, default_token_limit=self.config.default_token_limit
        )
        self.tracker = tracker or ProgressTracker(history_limit=self.config.history_limit)
        self.rate_limiter = rate_limiter or RateLimiter(self.registry)
        self.client = client or CompletionClient(self.config, self.rate_limiter)

    async def close(self) -> None:
        await self.client.close()

    async def process_file(
        self,
        input_path: str | os.PathLike,
        output_path: str | os.PathLike,
        prompt: str,
        model: str | None = None,
    ) -> str:
        """
        Process input_path with prompt and write the combined result to output_path.

        Returns:
            output_path as a string

        Raises:
            FileProcessingError: the file failed; the cause is chained
        """
        start_time = now_ms()
        file_name = os.path.basename(os.fspath(input_path))
        selected_model = model or self.config.default_model

        file_number = self.tracker.track_file(input_path)
        self.tracker.update(
            status=ProcessingStatus.PROCESSING,
            start_time=start_time,
            total_chunks=0,
            processed_chunks=0,
            error=None,
        )

        logger.info(
            f"[PROCESS FILE] {file_number}/{self.tracker.total_files} {input_path} -> {output_path} "
            f"model={selected_model} prompt={len(prompt)} chars"
        )

        try:
            with LatencyTracker(f"process_file:{file_name}"):
                content = await self._read(input_path)

                token_limit = self.registry.token_limit(selected_model)
                max_tokens = max_tokens_per_chunk(token_limit, self.config.chunk_safety_ratio)

                logger.info(
                    f"[PROCESS FILE] {file_name}: {len(content)} chars, "
                    f"~{round(estimate_tokens(content))} tokens, model limit {token_limit}, "
                    f"chunk budget {max_tokens}"
                )

                if needs_chunking(content, max_tokens):
                    response = await self._process_chunks(content, prompt, selected_model, max_tokens)
                else:
                    response = await self._process_single(content, prompt, selected_model)

                await self._write(output_path, response)

        except Exception as e:
            duration = now_ms() - start_time
            logger.error(f"[PROCESS FILE ERROR] {input_path} after {duration}ms: {e}")
            self.tracker.update(status=ProcessingStatus.ERROR, error=str(e))
            self.tracker.add_history(HistoryEntry(
                file=file_name,
                model=selected_model,
                duration=duration,
                timestamp=now_ms(),
                success=False,
                error=str(e),
            ))
            raise FileProcessingError(f"Failed to process file: {e}") from e

        duration = now_ms() - start_time

        if self.tracker.is_cancelled:
            # Partial output is kept; the batch-level cancelled state is the record.
            self.tracker.update(status=ProcessingStatus.CANCELLED)
            logger.info(f"[PROCESS FILE] {file_name}: cancelled, partial output saved to {output_path}")
            return os.fspath(output_path)

        logger.info(
            f"[PROCESS FILE] {file_name}: done in {duration}ms, "
            f"{len(response)} chars saved to {output_path}"
        )
        self.tracker.update(status=ProcessingStatus.COMPLETED, error=None)
        self.tracker.add_history(HistoryEntry(
            file=file_name,
            model=selected_model,
            duration=duration,
            timestamp=now_ms(),
            success=True,
        ))
        return os.fspath(output_path)

    async def _process_single(self, content: str, prompt: str, model: str) -> str:
        self.tracker.update(total_chunks=1, processed_chunks=0)
        if self.tracker.is_cancelled:
            logger.info("[PROCESS FILE] Cancelled before the API call")
            return ""
        response = await self.client.send(content, prompt, model)
        self.tracker.update(processed_chunks=1)
        return response

    async def _process_chunks(self, content: str, prompt: str, model: str, max_tokens: int) -> str:
        chunks = build_chunks(content, max_tokens)
        total = len(chunks)

        logger.info(
            f"[CHUNKING] Split into {total} chunks: "
            + ", ".join(f"{len(c.text)} chars" for c in chunks)
        )
        self.tracker.update(total_chunks=total, processed_chunks=0)

        start_time = self.tracker.start_time or now_ms()
        responses: list[str] = []

        for chunk in chunks:
            if self.tracker.is_cancelled:
                logger.info(f"[CHUNKING] Cancelled before {chunk.label()}")
                break

            logger.info(f"[CHUNK {chunk.index}/{total}] Processing...")
            try:
                result = await self.client.send(
                    chunk.text, chunk_prompt(prompt, chunk.index, total), model
                )
                logger.info(f"[CHUNK {chunk.index}/{total}] completed: {len(result)} chars")
            except ConfigurationError:
                raise
            except Exception as e:
                logger.error(f"[CHUNK ERROR] {chunk.index}/{total}: {type(e).__name__}: {e}")
                result = chunk_error_marker(e)

            responses.append(result)

            elapsed = now_ms() - start_time
            self.tracker.update(
                processed_chunks=chunk.index,
                estimated_end_time=int(start_time + elapsed / chunk.index * total),
            )

        combined = self.config.chunk_separator.join(responses)
        logger.info(f"[CHUNKING] Combined {len(responses)}/{total} chunks: {len(combined)} chars")
        return combined

    async def _read(self, input_path: str | os.PathLike) -> str:
        try:
            async with aiofiles.open(input_path, mode="r", encoding="utf-8") as f:
                return await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ReadWriteError(f"Could not read {input_path}: {e}") from e

    async def _write(self, output_path: str | os.PathLike, text: str) -> None:
        try:
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(output_path, mode="w", encoding="utf-8") as f:
                await f.write(text)
        except OSError as e:
            raise ReadWriteError(f"Could not write {output_path}: {e}") from e
