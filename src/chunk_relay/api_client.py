"""
Chat-completion client for chunk-relay.

Sends one chunk (prompt + content as a single user message) to the
configured endpoint and returns the completion text. Every attempt goes
through the rate limiter first; HTTP 429 responses are retried after the
server's Retry-After delay, all other failures are classified and raised.
"""

import asyncio
import email.utils
import logging
import time
from typing import Any, Awaitable, Callable, TYPE_CHECKING

import httpx

from .chunking import estimate_tokens
from .errors import (
    ConfigurationError,
    NetworkError,
    RateLimited,
    TokenLimitExceeded,
    UpstreamError,
)
from .profiling import LatencyTracker

if TYPE_CHECKING:
    from .config import RelayConfig
    from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


TOKEN_LIMIT_MARKERS = ("maximum context length",)
TOKEN_LIMIT_CODES = ("context_length_exceeded",)


def build_message(content: str, prompt: str) -> str:
    """Combine prompt and file content into the single user message."""
    return f"{prompt}\n\nFile Content:\n{content}"


def parse_retry_after(value: str | None, default: float) -> float:
    """
    Seconds to wait from a Retry-After header.

    Accepts delta-seconds or an HTTP-date; anything else yields default.
    """
    if not value:
        return default
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if retry_at is None:
        return default
    return max(0.0, retry_at.timestamp() - time.time())


def _error_detail(response: httpx.Response) -> tuple[str, str]:
    """(message, code) from an OpenAI-style error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return "", ""
    if not isinstance(body, dict):
        return "", ""
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or ""), str(error.get("code") or "")
    if isinstance(error, str):
        return error, ""
    return str(body.get("message") or ""), ""


def _usage_tokens(value: Any, estimate: float) -> float:
    """Reported token count if it is a positive number, else the estimate."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return estimate
    return value


class CompletionClient:
    """Handles single-chunk exchanges with the completion service."""

    def __init__(
        self,
        config: "RelayConfig",
        rate_limiter: "RateLimiter",
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.rate_limiter = rate_limiter
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout_seconds),
        )
        self._sleep = sleep
        self._api_call_count = 0

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._owns_client:
            await self._http_client.aclose()

    @property
    def api_call_count(self) -> int:
        return self._api_call_count

    def _check_configured(self) -> None:
        if not self.config.api_key or not self.config.api_endpoint:
            raise ConfigurationError("API key or endpoint not configured")

    async def send(self, content: str, prompt: str, model_key: str) -> str:
        """
        Send content with prompt to the model and return the completion text.

        Raises:
            ConfigurationError: endpoint or credential missing
            TokenLimitExceeded: the service reports the context is too long
            RateLimited: 429 retries exhausted
            UpstreamError: other non-2xx or malformed response
            NetworkError: no response received
        """
        self._check_configured()

        message = build_message(content, prompt)
        payload = {
            "model": model_key,
            "messages": [{"role": "user", "content": message}],
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

        estimated_input = estimate_tokens(message)
        estimated_output = estimated_input / 2

        retries = 0
        while True:
            await self.rate_limiter.admit(model_key)

            logger.info(
                f"[API CALL] model={model_key} message={len(message)} chars "
                f"(~{round(estimated_input)} tokens)"
            )

            try:
                self._api_call_count += 1
                with LatencyTracker(f"api_call:{model_key}"):
                    response = await self._http_client.post(
                        self.config.api_endpoint, json=payload, headers=headers
                    )
            except httpx.TimeoutException as e:
                logger.error(f"[NO API RESPONSE] model={model_key}: timeout: {e}")
                raise NetworkError(f"No response received from API (timeout): {e}") from e
            except httpx.TransportError as e:
                logger.error(f"[NO API RESPONSE] model={model_key}: {type(e).__name__}: {e}")
                raise NetworkError(f"No response received from API: {e}") from e
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                # Undecodable body, redirect loop, bad endpoint URL
                logger.error(f"[API ERROR] model={model_key}: {type(e).__name__}: {e}")
                raise UpstreamError(f"API request failed: {type(e).__name__}: {e}") from e

            if response.status_code == 429:
                retry_after = parse_retry_after(
                    response.headers.get("retry-after"),
                    self.config.default_retry_after_seconds,
                )
                retries += 1
                if (
                    not self.config.rate_limit_retries_unbounded
                    and retries > self.config.max_rate_limit_retries
                ):
                    raise RateLimited(
                        f"Rate limited by API after {retries - 1} retries", retry_after
                    )
                logger.warning(
                    f"[RATE LIMIT - RETRY] model={model_key}: retrying after {retry_after}s "
                    f"(attempt {retries})"
                )
                await self._sleep(retry_after)
                continue

            return self._handle_response(response, model_key, estimated_input, estimated_output)

    def _handle_response(
        self,
        response: httpx.Response,
        model_key: str,
        estimated_input: float,
        estimated_output: float,
    ) -> str:
        if not response.is_success:
            message, code = _error_detail(response)
            logger.error(
                f"[API ERROR] model={model_key} status={response.status_code}: {message or response.text[:500]}"
            )
            if response.status_code == 400 and (
                any(marker in message for marker in TOKEN_LIMIT_MARKERS)
                or code in TOKEN_LIMIT_CODES
            ):
                raise TokenLimitExceeded(f"Token limit exceeded: {message}")
            raise UpstreamError(
                f"API error: {response.status_code} - {message or 'Unknown error'}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(
                "Unexpected API response format: body is not JSON",
                status_code=response.status_code,
            ) from e

        usage = data.get("usage") if isinstance(data, dict) else None
        usage = usage if isinstance(usage, dict) else {}
        input_tokens = _usage_tokens(usage.get("prompt_tokens"), estimated_input)
        output_tokens = _usage_tokens(usage.get("completion_tokens"), estimated_output)
        self.rate_limiter.record(model_key, input_tokens, output_tokens)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str):
            logger.error(f"[UNEXPECTED API RESPONSE] model={model_key}: {str(data)[:1000]}")
            raise UpstreamError(
                "Unexpected API response format", status_code=response.status_code
            )

        return content


def create_completion_client(config: "RelayConfig", rate_limiter: "RateLimiter") -> CompletionClient:
    """Factory function to create a CompletionClient."""
    return CompletionClient(config, rate_limiter)
