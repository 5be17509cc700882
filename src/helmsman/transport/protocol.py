"""JSON-RPC 2.0 envelopes for the upstream tool server.

Requests carry ``jsonrpc``, ``id``, ``method`` and ``params``; notifications
omit the ``id``. Responses carry either ``result`` or ``error``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from helmsman.exceptions import UpstreamProtocolError

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

METHOD_INITIALIZE = "initialize"
METHOD_INITIALIZED = "notifications/initialized"
METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"

# Non-standard code some servers use for throttled calls.
RATE_LIMIT_CODE = -32029

_RATE_LIMIT_RE = re.compile(r"\brate[\s_-]?limit", re.IGNORECASE)
_RETRY_AFTER_RE = re.compile(r"retry[\s_-]?after\D{0,10}?(\d+(?:\.\d+)?)", re.IGNORECASE)


def build_request(request_id: int, method: str, params: dict | None = None) -> dict:
    """Build a JSON-RPC request envelope."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "method": method,
        "params": params if params is not None else {},
    }


def build_notification(method: str, params: dict | None = None) -> dict:
    """Build a JSON-RPC notification envelope (no id, no response)."""
    envelope: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        envelope["params"] = params
    return envelope


@dataclass(frozen=True)
class RPCErrorInfo:
    """The ``error`` member of a JSON-RPC response."""

    code: int
    message: str
    data: Any = None

    @property
    def is_rate_limited(self) -> bool:
        return self.code == RATE_LIMIT_CODE or bool(_RATE_LIMIT_RE.search(self.message))

    @property
    def retry_after(self) -> float | None:
        """Seconds to wait, from ``error.data`` or a "retry after N" phrase."""
        if isinstance(self.data, dict):
            for key in ("retry_after", "retryAfter", "Retry-After"):
                value = self.data.get(key)
                if value is not None:
                    try:
                        return float(value)
                    except (TypeError, ValueError):
                        break
        match = _RETRY_AFTER_RE.search(self.message)
        if match:
            return float(match.group(1))
        return None


@dataclass(frozen=True)
class RPCResponse:
    """A parsed JSON-RPC response."""

    id: Any
    result: dict = field(default_factory=dict)
    error: RPCErrorInfo | None = None

    @classmethod
    def from_dict(cls, payload: Any) -> RPCResponse:
        """Validate and parse a decoded JSON-RPC response.

        Raises:
            UpstreamProtocolError: If the document is not a response envelope.
        """
        if not isinstance(payload, dict):
            raise UpstreamProtocolError(
                f"Expected a JSON-RPC object, got {type(payload).__name__}"
            )
        if "result" not in payload and "error" not in payload:
            raise UpstreamProtocolError("JSON-RPC response has neither result nor error")

        error = None
        raw_error = payload.get("error")
        if raw_error is not None:
            if not isinstance(raw_error, dict):
                raise UpstreamProtocolError("JSON-RPC error member must be an object")
            error = RPCErrorInfo(
                code=int(raw_error.get("code", 0)),
                message=str(raw_error.get("message", "")),
                data=raw_error.get("data"),
            )
        result = payload.get("result")
        return cls(
            id=payload.get("id"),
            result=result if isinstance(result, dict) else {},
            error=error,
        )


def is_response_envelope(payload: Any) -> bool:
    """True when a decoded document looks like a JSON-RPC response."""
    return isinstance(payload, dict) and ("result" in payload or "error" in payload)


def ids_match(response_id: Any, request_id: int) -> bool:
    """Compare ids tolerating servers that echo ints as strings or floats."""
    if response_id == request_id:
        return True
    try:
        return float(response_id) == float(request_id)
    except (TypeError, ValueError):
        return False
