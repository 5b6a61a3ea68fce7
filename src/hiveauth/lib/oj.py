"""Thin orjson wrapper that speaks ``str`` like the stdlib json module."""

from __future__ import annotations

from typing import Any

import orjson

JSONDecodeError = orjson.JSONDecodeError


def dumps(obj: Any) -> str:
    """Serialize obj to a compact JSON string."""
    return orjson.dumps(obj).decode("utf-8")


def loads(data: str | bytes) -> Any:
    """Parse JSON from a str or bytes."""
    return orjson.loads(data)
