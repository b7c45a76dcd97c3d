"""Human-readable rendering of claude stream-json records."""

from __future__ import annotations

import json
from typing import Any, Optional

TOOL_INPUT_PREVIEW_CHARS = 150
TOOL_RESULT_PREVIEW_CHARS = 300


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _message_content(record: dict) -> Optional[list]:
    """Return ``record["message"]["content"]`` when it is a list, else ``None``."""
    message = record.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, list):
        return None
    return content


def _format_assistant(content: list) -> str:
    output = ""
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            output += str(block.get("text") or "")
        elif block_type == "tool_use":
            # Ellipsis is appended even when the input is shorter than the preview
            preview = _compact_json(block.get("input"))[:TOOL_INPUT_PREVIEW_CHARS]
            output += f"\n🔧 [{block.get('name')}] {preview}...\n"
    return output


def _format_tool_result(content: list) -> str:
    for block in content:
        if isinstance(block, dict) and block.get("type") == "tool_result":
            result = block.get("content")
            text = result if isinstance(result, str) else _compact_json(result)
            if len(text) > TOOL_RESULT_PREVIEW_CHARS:
                text = text[:TOOL_RESULT_PREVIEW_CHARS] + "..."
            return f"📋 [Result] {text}\n"
    return ""


def _format_result(record: dict) -> str:
    subtype = record.get("subtype") or "unknown"
    num_turns = record.get("num_turns") or 0
    cost = record.get("total_cost_usd")
    if isinstance(cost, (int, float)) and not isinstance(cost, bool):
        cost_str = f"{cost:.4f}"
    else:
        cost_str = "0"
    return f"\n✅ [{subtype}] Turns: {num_turns}, Cost: ${cost_str}\n"


def format_stream_message(record: Any) -> str:
    """Render one decoded record for the console; ``""`` means nothing to show."""
    if not isinstance(record, dict):
        return ""

    record_type = record.get("type")

    if record_type == "system" and record.get("subtype") == "init":
        session_id = record.get("session_id")
        if session_id:
            return f"[Session: {session_id}]\n"
        return ""

    if record_type == "assistant":
        content = _message_content(record)
        return _format_assistant(content) if content is not None else ""

    if record_type == "user":
        content = _message_content(record)
        return _format_tool_result(content) if content is not None else ""

    if record_type == "result":
        return _format_result(record)

    return ""


def extract_assistant_text(record: Any) -> Optional[str]:
    """Concatenate the text blocks of an assistant record.

    Returns ``None`` for anything that is not an assistant record with
    message content, so callers can tell "no update" from "empty text".
    """
    if not isinstance(record, dict) or record.get("type") != "assistant":
        return None
    content = _message_content(record)
    if content is None:
        return None
    return "".join(
        str(block.get("text") or "")
        for block in content
        if isinstance(block, dict) and block.get("type") == "text"
    )
