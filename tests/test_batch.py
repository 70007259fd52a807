"""
Tests for the batch runner.

Tests cover:
- Input collection (files, folders, extension filter)
- Sequential processing with failure isolation
- Cancellation at file boundaries
"""

from datetime import datetime
from pathlib import Path

import pytest

from chunk_relay.batch import (
    OUTPUT_PREFIX,
    collect_input_files,
    output_folder_name,
    process_batch,
)

from conftest import completion_response, request_message


ALLOWED = {".txt", ".md", ".srt"}


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestCollectInputFiles:
    """Tests for collect_input_files."""

    def test_files_and_folders(self, tmp_path: Path):
        folder = tmp_path / "folder"
        _write(folder / "b.txt", "b")
        _write(folder / "a.md", "a")
        _write(folder / "image.png", "x")
        (folder / "nested").mkdir()
        single = _write(tmp_path / "single.srt", "1")

        collected = collect_input_files([single, folder], ALLOWED)

        assert [p.name for p in collected.files] == ["single.srt", "a.md", "b.txt"]
        assert collected.skipped == []

    def test_skips_disallowed_and_missing(self, tmp_path: Path):
        pdf = _write(tmp_path / "doc.pdf", "x")

        collected = collect_input_files([pdf, tmp_path / "ghost.txt"], ALLOWED)

        assert collected.files == []
        assert len(collected.skipped) == 2
        assert "extension not allowed" in collected.skipped[0]
        assert "not found" in collected.skipped[1]

    def test_duplicate_names_keep_first(self, tmp_path: Path):
        first = _write(tmp_path / "a" / "x.txt", "from a")
        _write(tmp_path / "b" / "x.txt", "from b")
        _write(tmp_path / "b" / "y.txt", "y")

        collected = collect_input_files([tmp_path / "a", tmp_path / "b"], ALLOWED)

        assert collected.files == [first, tmp_path / "b" / "y.txt"]
        assert collected.skipped == [f"{tmp_path / 'b' / 'x.txt'} (duplicate name)"]

    def test_extension_match_is_case_insensitive(self, tmp_path: Path):
        upper = _write(tmp_path / "NOTES.TXT", "x")
        assert collect_input_files([upper], ALLOWED).files == [upper]


def test_output_folder_name():
    assert output_folder_name(datetime(2024, 3, 5, 7, 8, 9)) == "2024-03-05_07-08-09"


class TestProcessBatch:
    """Tests for process_batch."""

    @pytest.mark.asyncio
    async def test_processes_all_files(self, make_processor, tracker, tmp_path: Path):
        processor = make_processor(
            lambda r: completion_response(request_message(r).rsplit("\n", 1)[-1].upper())
        )
        inputs = [_write(tmp_path / "in" / f"{name}.txt", name) for name in ("one", "two")]
        out_dir = tmp_path / "out"

        result = await process_batch(processor, inputs, out_dir, "Shout")

        assert result.success_count == 2
        assert result.fail_count == 0
        assert not result.cancelled
        assert (out_dir / f"{OUTPUT_PREFIX}one.txt").read_text(encoding="utf-8") == "ONE"
        assert (out_dir / f"{OUTPUT_PREFIX}two.txt").read_text(encoding="utf-8") == "TWO"

        snapshot = tracker.snapshot()
        assert snapshot["totalFiles"] == 2
        assert snapshot["currentFileNumber"] == 2
        assert snapshot["status"] == "completed"
        assert len(snapshot["processingHistory"]) == 2

    @pytest.mark.asyncio
    async def test_same_name_from_two_folders(self, make_processor, tracker, tmp_path: Path):
        processor = make_processor(
            lambda r: completion_response(request_message(r).rsplit("\n", 1)[-1])
        )
        _write(tmp_path / "a" / "x.txt", "from a")
        _write(tmp_path / "b" / "x.txt", "from b")
        collected = collect_input_files([tmp_path / "a", tmp_path / "b"], ALLOWED)
        out_dir = tmp_path / "out"

        result = await process_batch(processor, collected.files, out_dir, "p")

        assert len(result.results) == 1
        assert (out_dir / f"{OUTPUT_PREFIX}x.txt").read_text(encoding="utf-8") == "from a"
        snapshot = tracker.snapshot()
        assert (snapshot["currentFileNumber"], snapshot["totalFiles"]) == (1, 1)

    @pytest.mark.asyncio
    async def test_duplicate_paths_processed_once(self, make_processor, tracker, tmp_path: Path):
        calls = []
        processor = make_processor(lambda r: calls.append(r) or completion_response("ok"))
        first = _write(tmp_path / "a" / "x.txt", "from a")
        second = _write(tmp_path / "b" / "x.txt", "from b")

        result = await process_batch(processor, [first, second], tmp_path / "out", "p")

        assert len(calls) == 1
        assert [r.original_name for r in result.results] == ["x.txt"]
        assert tracker.snapshot()["totalFiles"] == 1

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, make_processor, tracker, tmp_path: Path):
        processor = make_processor(lambda r: completion_response("ok"))
        good = _write(tmp_path / "good.txt", "fine")
        missing = tmp_path / "missing.txt"
        last = _write(tmp_path / "last.txt", "also fine")

        result = await process_batch(processor, [good, missing, last], tmp_path / "out", "p")

        assert [r.success for r in result.results] == [True, False, True]
        assert "Failed to process file" in result.results[1].error
        assert result.to_dict()["failCount"] == 1
        assert result.to_dict()["results"][0]["processedName"] == f"{OUTPUT_PREFIX}good.txt"

        history = tracker.snapshot()["processingHistory"]
        assert [h["success"] for h in history] == [True, False, True]

    @pytest.mark.asyncio
    async def test_cancel_stops_at_next_file(self, make_processor, tracker, tmp_path: Path):
        calls = []

        def handler(request):
            calls.append(request)
            tracker.cancel()
            return completion_response("ok")

        processor = make_processor(handler)
        inputs = [_write(tmp_path / f"f{i}.txt", str(i)) for i in range(3)]
        out_dir = tmp_path / "out"

        result = await process_batch(processor, inputs, out_dir, "p")

        assert len(calls) == 1
        assert result.cancelled
        assert len(result.results) == 1
        assert (out_dir / f"{OUTPUT_PREFIX}f0.txt").exists()
        assert not (out_dir / f"{OUTPUT_PREFIX}f1.txt").exists()
        assert tracker.snapshot()["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_new_batch_clears_cancellation(self, make_processor, tracker, tmp_path: Path):
        processor = make_processor(lambda r: completion_response("ok"))
        tracker.update(status="processing")
        tracker.cancel()

        source = _write(tmp_path / "a.txt", "x")
        result = await process_batch(processor, [source], tmp_path / "out", "p")

        assert not result.cancelled
        assert result.success_count == 1
