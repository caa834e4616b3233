"""Display Formatting for Tool Payloads.

Tool providers return whatever they like: MCP content lists, nested JSON,
markdown prose. These helpers turn all of it into plain readable text for
display. They are pure functions; the aggregator decides what to do when
one of them raises.
"""

from __future__ import annotations

import json
import re
from typing import Any

_HEADER = re.compile(r"^#{1,6}\s*(.*)$", re.MULTILINE)
_BOLD = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC = re.compile(r"\*([^*]+)\*")
_INLINE_CODE = re.compile(r"`([^`]+)`")
_CODE_FENCE = re.compile(r"```\w*\n?")
_JSON_OBJECT = re.compile(r"(\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\})")
_BLANK_RUNS = re.compile(r"\n{3,}")

MAX_STRING = 50
INLINE_ARRAY_ITEMS = 3
INLINE_ITEM_WIDTH = 20


def clean_markdown(text: str) -> str:
    """Strip markdown markup, keeping the words."""
    result = _CODE_FENCE.sub("", text)
    result = _HEADER.sub(r"\1", result)
    result = _BOLD.sub(r"\1", result)
    result = _ITALIC.sub(r"\1", result)
    result = _INLINE_CODE.sub(r"\1", result)
    return result


def format_value(value: Any, indent: int = 0) -> str:
    """Flatten a JSON-like value into indented `key: value` lines.

    Short arrays (up to three items of twenty characters) stay on one line;
    long strings are truncated to fifty characters.

    Example:
        >>> format_value({"id": 7, "labels": ["bug", "p1"]})
        'id: 7\\n  labels: ["bug", "p1"]'
    """
    next_indent = "  " * (indent + 1)
    if isinstance(value, dict):
        if not value:
            return "{}"
        lines = [f"{key}: {format_value(val, indent + 1)}" for key, val in value.items()]
        return f"\n{next_indent}".join(lines)
    if isinstance(value, list | tuple):
        if not value:
            return "[]"
        items = [format_value(item, indent) for item in value]
        if len(items) <= INLINE_ARRAY_ITEMS and all(len(item) <= INLINE_ITEM_WIDTH for item in items):
            return f"[{', '.join(items)}]"
        body = ",\n".join(f"{next_indent}{item}" for item in items)
        return f"[\n{body}{'  ' * indent}]"
    if isinstance(value, str):
        if len(value) > MAX_STRING:
            return f'"{value[: MAX_STRING - 3]}..."'
        return f'"{value}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def format_json_blocks(text: str) -> str:
    """Replace JSON objects embedded in text with their flattened form."""

    def _replace(match: re.Match[str]) -> str:
        try:
            return format_value(json.loads(match.group(1)))
        except json.JSONDecodeError:
            return match.group(1)

    return _JSON_OBJECT.sub(_replace, text)


def format_text(text: str) -> str:
    """Full text clean-up: markdown, embedded JSON, blank-line runs."""
    cleaned = format_json_blocks(clean_markdown(text))
    return _BLANK_RUNS.sub("\n\n", cleaned).strip()


def mcp_content_text(payload: dict[str, Any]) -> str | None:
    """Join the text parts of an MCP `tools/call` result.

    MCP results look like `{"content": [{"type": "text", "text": "..."}]}`.
    Returns None when the payload does not have that shape.
    """
    content = payload.get("content")
    if not isinstance(content, list):
        return None
    parts = [
        str(part["text"])
        for part in content
        if isinstance(part, dict) and part.get("type") == "text" and "text" in part
    ]
    if not parts:
        return None
    return "\n".join(parts)


def format_payload(payload: Any) -> str:
    """Render any tool payload as display text.

    Raises:
        ValueError: If the payload has nothing displayable (None, empty)
    """
    if payload is None:
        raise ValueError("empty payload")
    if isinstance(payload, str):
        if not payload.strip():
            raise ValueError("empty payload")
        return format_text(payload)
    if isinstance(payload, dict):
        text = mcp_content_text(payload)
        if text is not None:
            return format_text(text)
        if "structuredContent" in payload:
            return format_value(payload["structuredContent"])
        return format_value(payload)
    if isinstance(payload, list | tuple):
        return format_value(list(payload))
    if isinstance(payload, int | float | bool):
        return format_value(payload)
    raise ValueError(f"unsupported payload type: {type(payload).__name__}")


__all__ = [
    "clean_markdown",
    "format_json_blocks",
    "format_payload",
    "format_text",
    "format_value",
    "mcp_content_text",
]
