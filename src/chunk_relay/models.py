"""
Model registry for chunk-relay.

Static lookup of model capability metadata keyed by model identifier,
loaded once from a JSON catalog:

    {"models": [{"key": "gpt-4o", "tokenLimit": 128000, "rpm": 500, ...}]}

A missing or unreadable catalog degrades to an empty registry. Unknown
models fall back to the default token limit and skip rate limiting.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from .config import DEFAULT_TOKEN_LIMIT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelDescriptor:
    """Capability metadata for one model."""
    key: str
    token_limit: int
    rpm: int
    tpm: int
    cost_per_million_input: float = 0.0
    cost_per_million_output: float = 0.0
    display_name: str = ""
    provider: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelDescriptor":
        """Build a descriptor from a catalog entry (camelCase keys)."""
        key = data.get("key")
        if not key or not isinstance(key, str):
            raise ValueError("model entry has no key")

        limits = {}
        for name in ("tokenLimit", "rpm", "tpm"):
            value = data.get(name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"model {key}: {name} must be a positive integer, got {value!r}")
            limits[name] = value

        return cls(
            key=key,
            token_limit=limits["tokenLimit"],
            rpm=limits["rpm"],
            tpm=limits["tpm"],
            cost_per_million_input=float(data.get("costPerMillionInput", 0) or 0),
            cost_per_million_output=float(data.get("costPerMillionOutput", 0) or 0),
            display_name=data.get("displayName", key) or key,
            provider=data.get("provider", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "tokenLimit": self.token_limit,
            "rpm": self.rpm,
            "tpm": self.tpm,
            "costPerMillionInput": self.cost_per_million_input,
            "costPerMillionOutput": self.cost_per_million_output,
            "displayName": self.display_name,
            "provider": self.provider,
        }


class ModelRegistry:
    """Read-only catalog of ModelDescriptors."""

    def __init__(
        self,
        models: list[ModelDescriptor] | None = None,
        default_token_limit: int = DEFAULT_TOKEN_LIMIT,
    ):
        self.default_token_limit = default_token_limit
        self._models: dict[str, ModelDescriptor] = {}
        for model in models or []:
            self._models[model.key] = model

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        default_token_limit: int = DEFAULT_TOKEN_LIMIT,
    ) -> "ModelRegistry":
        """
        Load the catalog from a JSON file.

        Never raises: a load failure logs a warning and returns an empty
        registry, individual malformed entries are skipped.
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(
                f"[MODELS] Could not load {path}: {type(e).__name__}: {e}. Using default token limits."
            )
            return cls(default_token_limit=default_token_limit)

        entries = data.get("models", []) if isinstance(data, dict) else []
        if not isinstance(entries, list):
            logger.warning(f"[MODELS] {path}: 'models' is not a list. Using default token limits.")
            entries = []

        models = []
        for entry in entries:
            try:
                models.append(ModelDescriptor.from_dict(entry))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"[MODELS] Skipping entry in {path}: {e}")

        logger.info(f"[MODELS] Loaded {len(models)} models from {path}")
        return cls(models, default_token_limit=default_token_limit)

    def lookup(self, model_key: str | None) -> ModelDescriptor | None:
        if not model_key:
            logger.warning("[MODELS] lookup called with empty model key")
            return None
        return self._models.get(model_key)

    def token_limit(self, model_key: str | None) -> int:
        """Token limit for the model, or the default for unknown models."""
        model = self.lookup(model_key)
        if model is None:
            logger.warning(
                f"[MODELS] Using default token limit ({self.default_token_limit}) for unknown model: {model_key}"
            )
            return self.default_token_limit
        return model.token_limit

    def list_models(self) -> list[ModelDescriptor]:
        return list(self._models.values())

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, model_key: object) -> bool:
        return model_key in self._models

    def __iter__(self) -> Iterator[ModelDescriptor]:
        return iter(self._models.values())
