"""
Saved prompt library for chunk-relay.

Named prompts are kept in a JSON file:

    {"prompts": [{"name": "Translate to French", "text": "..."}]}

Saving an existing name replaces its text. The file is read on every call,
so edits made outside the server are picked up.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from .errors import ReadWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SavedPrompt:
    name: str
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "text": self.text}


class PromptLibrary:
    """File-backed list of named prompts."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def list_prompts(self) -> list[SavedPrompt]:
        """
        All saved prompts, in insertion order.

        A missing file is an empty library; unreadable or malformed files
        raise ReadWriteError.
        """
        if not self.path.exists():
            return []
        try:
            async with aiofiles.open(self.path, mode="r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except (OSError, ValueError) as e:
            raise ReadWriteError(f"Could not read prompts from {self.path}: {e}") from e

        entries = data.get("prompts", []) if isinstance(data, dict) else []
        prompts = []
        for entry in entries if isinstance(entries, list) else []:
            if isinstance(entry, dict) and entry.get("name") and isinstance(entry.get("text"), str):
                prompts.append(SavedPrompt(name=str(entry["name"]), text=entry["text"]))
        return prompts

    async def get(self, name: str) -> SavedPrompt | None:
        for prompt in await self.list_prompts():
            if prompt.name == name:
                return prompt
        return None

    async def save(self, name: str, text: str) -> bool:
        """Add or replace a prompt. Returns True if an existing one was replaced."""
        prompts = await self._load_for_update()
        replaced = False
        for i, prompt in enumerate(prompts):
            if prompt.name == name:
                prompts[i] = SavedPrompt(name=name, text=text)
                replaced = True
                break
        else:
            prompts.append(SavedPrompt(name=name, text=text))

        await self._write(prompts)
        logger.info(f"[PROMPTS] {'Updated existing' if replaced else 'Added new'} prompt: {name}")
        return replaced

    async def delete(self, name: str) -> bool:
        """Remove a prompt. Returns False if no prompt had that name."""
        prompts = await self.list_prompts()
        remaining = [p for p in prompts if p.name != name]
        if len(remaining) == len(prompts):
            return False

        await self._write(remaining)
        logger.info(f"[PROMPTS] Deleted prompt: {name}")
        return True

    async def _load_for_update(self) -> list[SavedPrompt]:
        # A corrupt library is replaced on save rather than blocking it
        try:
            return await self.list_prompts()
        except ReadWriteError as e:
            logger.warning(f"[PROMPTS] Starting a new library: {e}")
            return []

    async def _write(self, prompts: list[SavedPrompt]) -> None:
        payload = {"prompts": [p.to_dict() for p in prompts]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.path, mode="w", encoding="utf-8") as f:
                await f.write(json.dumps(payload, indent=2))
        except OSError as e:
            raise ReadWriteError(f"Could not write prompts to {self.path}: {e}") from e
