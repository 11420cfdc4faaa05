"""JSON-lines transport over stdin/stdout."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, TextIO

from docserve.server.dispatcher import Dispatcher
from docserve.server.models import INVALID_REQUEST, PARSE_ERROR, McpRequest, error_response

logger = logging.getLogger(__name__)


async def handle_json_line(dispatcher: Dispatcher, raw_line: str) -> dict[str, Any]:
    """Handle a single JSON-line request."""
    try:
        payload = json.loads(raw_line)
    except json.JSONDecodeError:
        return error_response(None, PARSE_ERROR, "Request must be valid JSON.")

    try:
        request = McpRequest.from_payload(payload)
    except ValueError as exc:
        request_id = payload.get("id") if isinstance(payload, dict) else None
        return error_response(request_id, INVALID_REQUEST, str(exc))

    return await dispatcher.handle(request)


async def serve_stdio(
    dispatcher: Dispatcher,
    in_stream: TextIO | None = None,
    out_stream: TextIO | None = None,
) -> None:
    """Read one request per line and write one response per line.

    Requests run concurrently; responses are written as they complete and
    carry the request id. Returns at end of input once every pending
    request has been answered.
    """
    in_stream = in_stream or sys.stdin
    out_stream = out_stream or sys.stdout
    pending: set[asyncio.Task] = set()

    async def respond(line: str) -> None:
        response = await handle_json_line(dispatcher, line)
        out_stream.write(f"{json.dumps(response)}\n")
        out_stream.flush()

    logger.info("Serving JSON-lines requests on stdio")
    while True:
        raw_line = await asyncio.to_thread(in_stream.readline)
        if not raw_line:
            break
        line = raw_line.strip()
        if not line:
            continue
        task = asyncio.create_task(respond(line))
        pending.add(task)
        task.add_done_callback(pending.discard)

    if pending:
        await asyncio.gather(*pending)
    logger.info("Input closed, stdio server stopped")
