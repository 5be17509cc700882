"""Upstream tool server transport: JSON-RPC over HTTP with retry."""

from helmsman.transport.client import UpstreamClient, parse_retry_after
from helmsman.transport.protocol import (
    METHOD_INITIALIZE,
    METHOD_INITIALIZED,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    PROTOCOL_VERSION,
    RATE_LIMIT_CODE,
    RPCErrorInfo,
    RPCResponse,
)
from helmsman.transport.sse import find_sse_response, iter_sse_data, parse_sse_response
from helmsman.transport.stub import STUB_SERVER_NAME, StubUpstreamClient

__all__ = [
    "METHOD_INITIALIZE",
    "METHOD_INITIALIZED",
    "METHOD_TOOLS_CALL",
    "METHOD_TOOLS_LIST",
    "PROTOCOL_VERSION",
    "RATE_LIMIT_CODE",
    "RPCErrorInfo",
    "RPCResponse",
    "STUB_SERVER_NAME",
    "StubUpstreamClient",
    "UpstreamClient",
    "find_sse_response",
    "iter_sse_data",
    "parse_retry_after",
    "parse_sse_response",
]
