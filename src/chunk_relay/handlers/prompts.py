"""
Prompt library handlers for the chunk-relay MCP server.

- relay_prompts: list saved prompts
- relay_save_prompt: add or replace a named prompt
- relay_delete_prompt: remove a named prompt
"""

import json
from typing import Any, Callable

from mcp.types import TextContent

from ..errors import ReadWriteError
from ..prompts import PromptLibrary


MAX_PROMPT_NAME_LENGTH = 256
MAX_PROMPT_TEXT_LENGTH = 50_000


def _text(payload: dict[str, Any]) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


async def handle_list_prompts(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_prompts tool call."""
    config, _, _, _ = get_instances()

    try:
        prompts = await PromptLibrary(config.prompts_path).list_prompts()
    except ReadWriteError as e:
        return _text({"success": False, "error": str(e)})
    return _text({"success": True, "prompts": [p.to_dict() for p in prompts]})


async def handle_save_prompt(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_save_prompt tool call."""
    config, _, _, _ = get_instances()

    name = arguments.get("name")
    text = arguments.get("text")
    if not isinstance(name, str) or not name.strip() or not isinstance(text, str) or not text.strip():
        return _text({"success": False, "error": "Prompt name and text are required"})
    if len(name) > MAX_PROMPT_NAME_LENGTH:
        return _text({"success": False, "error": f"name too long ({len(name)} > {MAX_PROMPT_NAME_LENGTH})"})
    if len(text) > MAX_PROMPT_TEXT_LENGTH:
        return _text({"success": False, "error": f"text too long ({len(text)} > {MAX_PROMPT_TEXT_LENGTH})"})

    try:
        replaced = await PromptLibrary(config.prompts_path).save(name, text)
    except ReadWriteError as e:
        return _text({"success": False, "error": str(e)})

    return _text({
        "success": True,
        "message": "Prompt updated successfully" if replaced else "Prompt saved successfully",
        "prompt": {"name": name, "text": text},
    })


async def handle_delete_prompt(arguments: dict[str, Any], get_instances: Callable) -> list[TextContent]:
    """Handle relay_delete_prompt tool call."""
    config, _, _, _ = get_instances()

    name = arguments.get("name")
    if not isinstance(name, str) or not name:
        return _text({"success": False, "error": "name is required"})

    try:
        deleted = await PromptLibrary(config.prompts_path).delete(name)
    except ReadWriteError as e:
        return _text({"success": False, "error": str(e)})

    if not deleted:
        return _text({"success": False, "error": f'Prompt "{name}" not found'})
    return _text({"success": True, "message": f'Prompt "{name}" deleted successfully'})
