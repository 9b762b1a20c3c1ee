"""
LLM Emulator Common Utilities

Shared helpers used across the emulator modules.
"""

import inspect
import json
import os
import random
import string
from typing import Any, Optional

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_id(prefix: str, length: int = 11) -> str:
    """
    Random identifier with a prefix, e.g. "chatcmpl_mock_k3v9x0q1a2b".

    Not meant to be unpredictable; only unique enough for mock payloads.
    """
    suffix = ''.join(random.choice(_ID_ALPHABET) for _ in range(length))
    return f'{prefix}_{suffix}'


def safe_json_parse(json_string: Any, default: Any = None) -> Any:
    """
    Safely parse JSON string with error handling.

    Args:
        json_string: JSON string (or bytes) to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails

    Example:
        body = safe_json_parse(await request.body(), default={})
    """
    if not json_string:
        return default

    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


async def maybe_await(value: Any) -> Any:
    """Await value if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def env_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read an LLM_EMULATOR_* environment setting (empty counts as unset)."""
    value = os.environ.get(f'LLM_EMULATOR_{name}')
    return value if value else default
