"""Server-sent events helpers."""

from __future__ import annotations

import json

from sharebite.types import JsonObject


def format_sse(event_type: str, data: JsonObject, event_id: str | None = None) -> str:
    """Format a single SSE event payload."""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event_type}")
    lines.append(f"data: {json.dumps(data, separators=(',', ':'))}")
    return "\n".join(lines) + "\n\n"


def format_sse_comment(comment: str = "ping") -> str:
    """Format a comment line; keeps idle connections open through proxies."""
    return f": {comment}\n\n"


STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Content-Encoding": "identity",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
