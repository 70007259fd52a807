"""
Tests for the MCP tool handlers.

Handlers are called directly with a get_instances stub; the processor
talks to an httpx.MockTransport.
"""

import json
from pathlib import Path

import pytest

from chunk_relay.config import ServerConfig
from chunk_relay.handlers import (
    BatchJobRunner,
    handle_cancel,
    handle_models,
    handle_process_files,
    handle_progress,
    handle_reset,
    handle_status,
)

from conftest import completion_response


def _payload(result) -> dict:
    assert len(result) == 1
    assert result[0].type == "text"
    return json.loads(result[0].text)


@pytest.fixture
def instances(relay_config, make_processor):
    processor = make_processor(lambda r: completion_response("done"))
    runner = BatchJobRunner(processor)
    bundle = (relay_config, ServerConfig(), processor, runner)
    return lambda: bundle


class TestProcessFiles:
    """Tests for handle_process_files."""

    @pytest.mark.asyncio
    async def test_runs_batch_in_background(self, instances, tmp_path: Path):
        (tmp_path / "in").mkdir()
        (tmp_path / "in" / "a.txt").write_text("hello", encoding="utf-8")
        out_dir = tmp_path / "out"

        payload = _payload(await handle_process_files(
            {"prompt": "Translate", "paths": [str(tmp_path / "in")], "output_dir": str(out_dir)},
            instances,
        ))

        assert payload["success"] is True
        assert payload["files"] == ["a.txt"]
        assert payload["model"] == "test-model"

        _, _, _, runner = instances()
        result = await runner.wait()
        assert result.success_count == 1
        assert (out_dir / "processed_a.txt").read_text(encoding="utf-8") == "done"

        progress = _payload(await handle_progress({}, instances))
        assert progress["batchRunning"] is False
        assert progress["status"] == "completed"
        assert progress["lastBatch"]["successCount"] == 1

    @pytest.mark.asyncio
    async def test_requires_prompt(self, instances, tmp_path: Path):
        payload = _payload(await handle_process_files({"paths": [str(tmp_path)]}, instances))

        assert payload["success"] is False
        assert "prompt" in payload["error"]

    @pytest.mark.asyncio
    async def test_requires_paths(self, instances):
        payload = _payload(await handle_process_files({"prompt": "p", "paths": []}, instances))
        assert payload["success"] is False

    @pytest.mark.asyncio
    async def test_rejects_null_bytes(self, instances):
        payload = _payload(await handle_process_files({"prompt": "p", "paths": ["a\x00b"]}, instances))

        assert payload["success"] is False
        assert "null bytes" in payload["error"]

    @pytest.mark.asyncio
    async def test_no_allowed_files(self, instances, tmp_path: Path):
        (tmp_path / "image.png").write_bytes(b"\x89PNG")

        payload = _payload(await handle_process_files(
            {"prompt": "p", "paths": [str(tmp_path / "image.png")]}, instances
        ))

        assert payload["success"] is False
        assert len(payload["skipped"]) == 1


class TestControl:
    """Tests for cancel, reset and progress."""

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, instances):
        payload = _payload(await handle_cancel({}, instances))

        assert payload["success"] is False
        assert payload["status"] == "idle"

    @pytest.mark.asyncio
    async def test_cancel_while_processing(self, instances):
        _, _, processor, _ = instances()
        processor.tracker.update(status="processing")

        payload = _payload(await handle_cancel({}, instances))

        assert payload["success"] is True
        assert payload["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_reset(self, instances):
        _, _, processor, _ = instances()
        processor.tracker.set_total_files(4)

        payload = _payload(await handle_reset({}, instances))

        assert payload["success"] is True
        assert _payload(await handle_progress({}, instances))["totalFiles"] == 0

    @pytest.mark.asyncio
    async def test_progress_shape(self, instances):
        progress = _payload(await handle_progress({}, instances))

        assert progress["status"] == "idle"
        assert progress["batchRunning"] is False
        assert "lastBatch" not in progress


class TestCatalog:
    """Tests for models and status."""

    @pytest.mark.asyncio
    async def test_models(self, instances):
        payload = _payload(await handle_models({}, instances))

        assert {m["key"] for m in payload["models"]} == {"test-model", "slow-model"}
        assert payload["defaultModel"] == "test-model"

    @pytest.mark.asyncio
    async def test_status(self, instances):
        payload = _payload(await handle_status({}, instances))

        assert payload["server"]["name"] == "chunk-relay"
        assert payload["configuration"]["api_key_set"] is True
        assert payload["models_loaded"] == 2
        assert payload["batch_running"] is False
