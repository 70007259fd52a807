"""
Configuration for the chunk-relay pipeline

Environment Variables:
- MONICA_API_KEY: Bearer credential for the chat-completion endpoint
- MONICA_API_ENDPOINT: Full URL of the chat-completion endpoint
- DEFAULT_MODEL: Model used when a request does not name one (default: gpt-4o)
- DATA_DIR: Base data directory (default: ./data)
- RELAY_MODELS_PATH: Model catalog JSON (default: <DATA_DIR>/config/models.json)
- RELAY_PROMPTS_PATH: Saved prompt library JSON (default: <DATA_DIR>/config/prompts.json)
- RELAY_REQUEST_TIMEOUT: Seconds before an API call is abandoned (default: 300)
- RELAY_DEFAULT_RETRY_AFTER: Wait after a 429 without Retry-After (default: 60)
- RELAY_MAX_RATE_LIMIT_RETRIES: 429 retries per call, negative = unbounded (default: 10)

Endpoint and credential are only checked on first use, so the server can
start (and report progress/models) without them.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Set
from dotenv import load_dotenv

load_dotenv()


DEFAULT_MODEL = "gpt-4o"
DEFAULT_TOKEN_LIMIT = 100_000


@dataclass
class RelayConfig:
    """Configuration for chunked processing and API dispatch."""

    # API Configuration
    api_key: str = field(default_factory=lambda: os.getenv("MONICA_API_KEY", ""))
    api_endpoint: str = field(default_factory=lambda: os.getenv("MONICA_API_ENDPOINT", ""))
    default_model: str = field(default_factory=lambda: os.getenv("DEFAULT_MODEL", DEFAULT_MODEL))

    # Data locations
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "data"))
    models_path: str = field(default_factory=lambda: os.getenv("RELAY_MODELS_PATH", ""))
    prompts_path: str = field(default_factory=lambda: os.getenv("RELAY_PROMPTS_PATH", ""))

    # Request handling
    request_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("RELAY_REQUEST_TIMEOUT", "300"))
    )
    default_retry_after_seconds: float = field(
        default_factory=lambda: float(os.getenv("RELAY_DEFAULT_RETRY_AFTER", "60"))
    )
    max_rate_limit_retries: int = field(
        default_factory=lambda: int(os.getenv("RELAY_MAX_RATE_LIMIT_RETRIES", "10"))
    )

    # Chunking
    default_token_limit: int = DEFAULT_TOKEN_LIMIT
    chunk_safety_ratio: float = 0.8  # 20% reserved for prompt and response
    chunk_separator: str = "\n\n Next Chunk \n\n"

    # Progress
    history_limit: int = 10

    allowed_extensions: Set[str] = field(default_factory=lambda: {".txt", ".md", ".srt"})

    def __post_init__(self) -> None:
        if not self.models_path:
            self.models_path = str(Path(self.data_dir) / "config" / "models.json")
        if not self.prompts_path:
            self.prompts_path = str(Path(self.data_dir) / "config" / "prompts.json")

    @property
    def outputs_dir(self) -> Path:
        return Path(self.data_dir) / "outputs"

    @property
    def rate_limit_retries_unbounded(self) -> bool:
        return self.max_rate_limit_retries < 0

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.api_key:
            errors.append("MONICA_API_KEY environment variable not set")

        if not self.api_endpoint:
            errors.append("MONICA_API_ENDPOINT environment variable not set")

        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")

        if not 0 < self.chunk_safety_ratio <= 1:
            errors.append("chunk_safety_ratio must be in (0, 1]")

        if self.history_limit < 1:
            errors.append("history_limit must be at least 1")

        return errors


@dataclass
class ServerConfig:
    """Configuration for the MCP server."""

    name: str = "chunk-relay"
    version: str = "1.0.0"
    description: str = (
        "MCP server that splits large text files into context-sized chunks, "
        "relays them to a chat-completion API under per-model rate limits, "
        "and reports batch progress"
    )


def get_config() -> tuple[RelayConfig, ServerConfig]:
    """Get configuration instances."""
    return RelayConfig(), ServerConfig()
