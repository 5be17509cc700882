"""JSON-RPC client for the upstream tool server, with tenacity retry.

Speaks JSON-RPC 2.0 over HTTP(S). Responses may be a single JSON body or a
Server-Sent-Events stream. Transient failures are retried on a fixed delay
sequence; rate-limit responses wait exactly as long as the server asks.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import tenacity

from helmsman._version import __version__
from helmsman.exceptions import (
    ToolRateLimitedError,
    TransportCancelledError,
    TransportClosedError,
    UpstreamConnectionError,
    UpstreamHTTPError,
    UpstreamProtocolError,
    UpstreamRateLimitError,
    UpstreamRPCError,
)
from helmsman.models.config import DEFAULT_RETRY_DELAYS
from helmsman.models.messages import ToolDefinition, ToolResult
from helmsman.transport.protocol import (
    METHOD_INITIALIZE,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    PROTOCOL_VERSION,
    RPCResponse,
    build_notification,
    build_request,
    ids_match,
    is_response_envelope,
)
from helmsman.transport.sse import find_sse_response, parse_sse_response

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"

_DEFAULT_CLIENT_INFO = {"name": "helmsman", "version": __version__}

# How often a caller blocked on an in-flight request looks at its cancel event.
_CANCEL_POLL_SECONDS = 0.05


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is a transient upstream failure.

    Retryable: connection errors, timeouts, bare non-2xx responses and
    rate limits. Not retryable: structured RPC errors, protocol errors,
    cancellation and closed clients.
    """
    return isinstance(
        exc, (UpstreamConnectionError, UpstreamHTTPError, UpstreamRateLimitError)
    )


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header: delta-seconds or an HTTP date."""
    if value is None:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def _check_cancel(cancel: threading.Event | None, method: str) -> None:
    if cancel is not None and cancel.is_set():
        raise TransportCancelledError(f"{method} cancelled")


def _is_event_stream(response: httpx.Response) -> bool:
    return "text/event-stream" in response.headers.get("content-type", "")


def _iter_lines(
    response: httpx.Response, cancel: threading.Event | None, method: str
) -> Iterator[str]:
    """Yield body lines as they arrive, blank event separators included."""
    pending = ""
    for text in response.iter_text():
        _check_cancel(cancel, method)
        pending += text
        *lines, pending = pending.split("\n")
        yield from lines
    if pending:
        yield pending


def _read_text(response: httpx.Response, cancel: threading.Event | None, method: str) -> str:
    """Read the whole body, checking for cancellation between chunks."""
    chunks: list[bytes] = []
    for chunk in response.iter_bytes():
        _check_cancel(cancel, method)
        chunks.append(chunk)
    return b"".join(chunks).decode(response.charset_encoding or "utf-8", errors="replace")


class UpstreamClient:
    """Sync httpx client for a JSON-RPC tool server.

    Retries transient failures on a fixed delay sequence (default 2s, 5s,
    10s). Rate-limit responses (HTTP 429 or a rate-limit flavoured RPC
    error) honor the server's ``Retry-After`` hint exactly. Tool-level RPC
    errors come back as ``ToolResult(is_error=True)``.

    Every call accepts a ``cancel`` event. Setting it aborts backoff and any
    request in flight; SSE replies are read only up to the matching event.

    Usage::

        with UpstreamClient("https://game.example/mcp") as client:
            client.initialize({"name": "helmsman"})
            tools = client.list_tools()
            result = client.call_tool("get_status", {})
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        retry_delays: tuple[float, ...] | list[float] = DEFAULT_RETRY_DELAYS,
        max_attempts: int | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize the upstream client.

        Args:
            url: JSON-RPC endpoint URL.
            timeout: Per-request timeout in seconds.
            retry_delays: Fixed backoff sequence in seconds. The last delay
                repeats if more attempts are allowed than delays given.
            max_attempts: Total attempts per request. Defaults to
                ``len(retry_delays) + 1``.
            headers: Extra HTTP headers sent with every request.
            transport: Optional httpx transport (tests use MockTransport).
            sleep: Optional sleep function used between attempts.
        """
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")
        self._url = url
        self._retry_delays = tuple(float(d) for d in retry_delays)
        self._max_attempts = max_attempts or len(self._retry_delays) + 1
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()
        self._session_id: str | None = None
        self._server_info: dict | None = None
        self._closed = False
        base_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if headers:
            base_headers.update(headers)
        self._client = httpx.Client(timeout=timeout, headers=base_headers, transport=transport)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def server_info(self) -> dict | None:
        """The ``serverInfo`` document returned by the last initialize()."""
        return self._server_info

    @property
    def closed(self) -> bool:
        return self._closed

    def initialize(
        self,
        client_info: dict | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> dict:
        """Perform the protocol handshake.

        Returns:
            The initialize result document (protocolVersion, capabilities,
            serverInfo).

        Raises:
            UpstreamRPCError: If the server answers with an RPC error.
            TransportError: On transport failure after retries.
        """
        params = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": client_info or dict(_DEFAULT_CLIENT_INFO),
        }
        response = self._rpc(METHOD_INITIALIZE, params, cancel=cancel)
        if response.error is not None:
            raise UpstreamRPCError(METHOD_INITIALIZE, response.error.code, response.error.message)
        self._server_info = response.result.get("serverInfo")
        logger.info(
            "Upstream initialized: %s (protocol %s)",
            (self._server_info or {}).get("name", "unknown"),
            response.result.get("protocolVersion", "?"),
        )
        return response.result

    def notify(self, method: str, params: dict | None = None) -> None:
        """Send a notification. Fire-and-forget: one attempt, body ignored.

        Raises:
            UpstreamConnectionError: If the request could not be sent.
        """
        self._check_open()
        try:
            response = self._client.post(
                self._url,
                json=build_notification(method, params),
                headers=self._session_headers(),
            )
        except httpx.HTTPError as exc:
            raise UpstreamConnectionError(f"Notification {method} failed: {exc}") from exc
        if not response.is_success:
            logger.warning(
                "Notification %s answered with HTTP %d", method, response.status_code
            )

    def list_tools(self, *, cancel: threading.Event | None = None) -> list[ToolDefinition]:
        """Fetch the tool catalogue, following pagination cursors."""
        tools: list[ToolDefinition] = []
        cursor: str | None = None
        while True:
            params = {"cursor": cursor} if cursor else {}
            response = self._rpc(METHOD_TOOLS_LIST, params, cancel=cancel)
            if response.error is not None:
                raise UpstreamRPCError(METHOD_TOOLS_LIST, response.error.code, response.error.message)
            for raw in response.result.get("tools") or ():
                tools.append(ToolDefinition.from_mcp(raw))
            cursor = response.result.get("nextCursor")
            if not cursor:
                break
        logger.debug("Upstream lists %d tool(s)", len(tools))
        return tools

    def call_tool(
        self,
        name: str,
        arguments: dict | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ToolResult:
        """Invoke an upstream tool.

        Tool-level RPC errors (including rate limits that outlast the retry
        budget) are returned as ``is_error`` results, not raised.

        Raises:
            TransportError: On transport failure after retries.
        """
        params = {"name": name, "arguments": arguments or {}}
        try:
            response = self._rpc(METHOD_TOOLS_CALL, params, cancel=cancel)
        except ToolRateLimitedError as exc:
            logger.warning("Tool %s still rate limited after retries: %s", name, exc.rpc_message)
            return ToolResult.error(exc.rpc_message)
        if response.error is not None:
            logger.debug("Tool %s returned RPC error %d", name, response.error.code)
            return ToolResult.error(response.error.message)
        return ToolResult.from_mcp(response.result)

    def close(self) -> None:
        """Close the underlying httpx client. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._client.close()

    def __enter__(self) -> UpstreamClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------

    def _rpc(
        self,
        method: str,
        params: dict | None,
        *,
        cancel: threading.Event | None,
    ) -> RPCResponse:
        """Send one request with retry.

        Uses tenacity.Retrying programmatically so that the delay sequence
        and attempt budget are configurable per instance.
        """
        with self._id_lock:
            request_id = next(self._ids)
        envelope = build_request(request_id, method, params)
        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=self._wait,
            stop=tenacity.stop_after_attempt(self._max_attempts),
            sleep=self._make_sleep(cancel),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(self._send_once, envelope, cancel)

    def _send_once(self, envelope: dict, cancel: threading.Event | None) -> RPCResponse:
        """Execute a single request (no retry)."""
        self._check_open()
        _check_cancel(cancel, envelope["method"])
        if cancel is None:
            return self._exchange(envelope, None)
        return self._exchange_cancellable(envelope, cancel)

    def _exchange_cancellable(self, envelope: dict, cancel: threading.Event) -> RPCResponse:
        """Run one exchange on a worker thread and abandon it on cancel.

        The caller gets ``TransportCancelledError`` as soon as ``cancel`` is
        set, even while the worker is blocked on a slow stream. The worker
        stops at its next read and its late result is discarded; a stalled
        socket is bounded by the request timeout.
        """
        outcome: dict[str, Any] = {}
        done = threading.Event()

        def _worker() -> None:
            try:
                outcome["response"] = self._exchange(envelope, cancel)
            except Exception as exc:
                outcome["error"] = exc
            finally:
                done.set()

        threading.Thread(target=_worker, name="helmsman-upstream", daemon=True).start()
        while not done.wait(_CANCEL_POLL_SECONDS):
            _check_cancel(cancel, envelope["method"])
        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _exchange(self, envelope: dict, cancel: threading.Event | None) -> RPCResponse:
        """POST the envelope and read the reply as it streams in."""
        try:
            with self._client.stream(
                "POST", self._url, json=envelope, headers=self._session_headers()
            ) as response:
                session_id = response.headers.get(SESSION_HEADER)
                if session_id:
                    self._session_id = session_id
                return self._read_response(response, envelope, cancel)
        except httpx.HTTPError as exc:
            raise UpstreamConnectionError(f"{envelope['method']} failed: {exc}") from exc

    def _read_response(
        self,
        response: httpx.Response,
        envelope: dict,
        cancel: threading.Event | None,
    ) -> RPCResponse:
        method = envelope["method"]
        if response.status_code == 429:
            body = _read_text(response, cancel, method)
            raise UpstreamRateLimitError(
                f"Rate limited: HTTP 429 - {body[:200]}",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        if response.is_success and _is_event_stream(response):
            # Stop reading at the matching event; the server may hold the
            # stream open afterwards.
            rpc = find_sse_response(_iter_lines(response, cancel, method), envelope["id"])
        else:
            body = _read_text(response, cancel, method)
            rpc = self._decode(response, body, envelope["id"])
            if rpc is None:
                if not response.is_success:
                    raise UpstreamHTTPError(response.status_code, body)
                raise UpstreamProtocolError(f"{method}: response body is not a JSON-RPC response")

        if rpc.error is not None and rpc.error.is_rate_limited:
            if method == METHOD_TOOLS_CALL:
                raise ToolRateLimitedError(
                    rpc.error.code, rpc.error.message, retry_after=rpc.error.retry_after
                )
            raise UpstreamRateLimitError(
                f"{method} rate limited: {rpc.error.message}",
                retry_after=rpc.error.retry_after,
            )
        return rpc

    def _decode(self, response: httpx.Response, body: str, request_id: int) -> RPCResponse | None:
        """Decode a fully read JSON or SSE body. None means no structured response."""
        if _is_event_stream(response):
            try:
                return parse_sse_response(body, request_id)
            except UpstreamProtocolError:
                if not response.is_success:
                    return None
                raise

        if not body:
            return None
        try:
            payload: Any = json.loads(body)
        except ValueError as exc:
            if not response.is_success:
                return None
            raise UpstreamProtocolError(f"Malformed JSON response: {exc}") from exc

        if not is_response_envelope(payload):
            return None
        if payload.get("id") is not None and not ids_match(payload["id"], request_id):
            raise UpstreamProtocolError(
                f"Response id {payload['id']!r} does not match request id {request_id}"
            )
        return RPCResponse.from_dict(payload)

    def _wait(self, retry_state: tenacity.RetryCallState) -> float:
        """Delay before the next attempt: Retry-After hint, else the sequence."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, UpstreamRateLimitError) and exc.retry_after is not None:
            return exc.retry_after
        index = min(retry_state.attempt_number - 1, len(self._retry_delays) - 1)
        return self._retry_delays[index]

    def _make_sleep(self, cancel: threading.Event | None) -> Callable[[float], None]:
        sleep = self._sleep

        def _sleep(seconds: float) -> None:
            if sleep is not None:
                sleep(seconds)
            elif cancel is not None:
                cancel.wait(seconds)
            else:
                time.sleep(seconds)
            if cancel is not None and cancel.is_set():
                raise TransportCancelledError("Upstream request cancelled during backoff")

        return _sleep

    def _session_headers(self) -> dict[str, str]:
        if self._session_id:
            return {SESSION_HEADER: self._session_id}
        return {}

    def _check_open(self) -> None:
        if self._closed:
            raise TransportClosedError("Upstream client is closed")
