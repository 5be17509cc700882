"""Server-Sent Events decoding for streamed JSON-RPC responses.

One logical message may be split over several consecutive ``data:`` lines;
they are joined with newlines and parsed once the blank line that ends the
event arrives. Decoding works on any iterable of lines, so a live stream is
consumed as it arrives and reading stops at the first matching response.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from typing import Any

from helmsman.exceptions import UpstreamProtocolError
from helmsman.transport.protocol import RPCResponse, ids_match, is_response_envelope


def iter_sse_data(lines: Iterable[str]) -> Iterator[str]:
    """Yield the reassembled ``data`` payload of each event.

    Lines other than ``data:`` (``event:``, ``id:``, ``retry:``, comments)
    are ignored. A trailing event without a terminating blank line is still
    yielded.
    """
    buffer: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r")
        if line == "":
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        name, sep, value = line.partition(":")
        if name != "data":
            continue
        if sep and value.startswith(" "):
            value = value[1:]
        buffer.append(value)
    if buffer:
        yield "\n".join(buffer)


def find_sse_response(lines: Iterable[str], request_id: int | None = None) -> RPCResponse:
    """Return the first JSON-RPC response carried by an SSE line stream.

    Lines after the matching event are never pulled from ``lines``.

    Args:
        lines: SSE lines without terminators, e.g. ``response.iter_lines()``.
        request_id: Id of the request being answered. When given, events
            answering other ids (and server notifications) are skipped.

    Raises:
        UpstreamProtocolError: If no event holds a matching response.
    """
    for data in iter_sse_data(lines):
        try:
            payload: Any = json.loads(data)
        except json.JSONDecodeError as exc:
            raise UpstreamProtocolError(f"Malformed SSE event data: {exc}") from exc
        if not is_response_envelope(payload):
            continue
        if request_id is not None and not ids_match(payload.get("id"), request_id):
            continue
        return RPCResponse.from_dict(payload)
    raise UpstreamProtocolError("SSE stream ended without a JSON-RPC response")


def parse_sse_response(body: str, request_id: int | None = None) -> RPCResponse:
    """Find the JSON-RPC response in a fully received SSE body."""
    return find_sse_response(body.splitlines(), request_id)
