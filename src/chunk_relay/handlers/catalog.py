"""
Catalog and status handlers for the chunk-relay MCP server.
"""

import json
from typing import Any, Callable

from mcp.types import TextContent


async def handle_models(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_models tool call."""
    config, _, processor, _ = get_instances()

    models = [m.to_dict() for m in processor.registry.list_models()]
    return [TextContent(type="text", text=json.dumps({
        "models": models,
        "defaultModel": config.default_model,
        "defaultTokenLimit": processor.registry.default_token_limit,
    }, indent=2))]


async def handle_status(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_status tool call."""
    config, server_config, processor, runner = get_instances()

    status = {
        "server": {
            "name": server_config.name,
            "version": server_config.version,
        },
        "configuration": {
            "api_endpoint": config.api_endpoint,
            "api_key_set": bool(config.api_key),
            "default_model": config.default_model,
            "models_path": config.models_path,
            "request_timeout_seconds": config.request_timeout_seconds,
            "max_rate_limit_retries": config.max_rate_limit_retries,
            "problems": config.validate(),
        },
        "models_loaded": len(processor.registry),
        "api_calls": processor.client.api_call_count,
        "rate_limits": [
            processor.rate_limiter.get_stats(key)
            for key in processor.rate_limiter.tracked_models()
        ],
        "batch_running": runner.running,
        "progress_status": processor.tracker.status.value,
    }

    return [TextContent(type="text", text=json.dumps(status, indent=2))]
