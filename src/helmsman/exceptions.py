"""Helmsman exception hierarchy.

All Helmsman-specific exceptions inherit from HelmsmanError.
"""


class HelmsmanError(Exception):
    """Base exception for all Helmsman errors."""


class ConfigurationError(HelmsmanError):
    """Raised when configuration or startup validation fails."""


class SessionError(HelmsmanError):
    """Raised when session lookups or session operations fail."""


# ---------------------------------------------------------------------------
# Upstream transport
# ---------------------------------------------------------------------------


class TransportError(HelmsmanError):
    """Network or HTTP failure talking to the upstream tool server.

    Raised once retries are exhausted, or immediately for failures that
    are not worth retrying.
    """


class UpstreamHTTPError(TransportError):
    """Non-2xx HTTP status with no structured JSON-RPC error in the body."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        message = f"Upstream returned HTTP {status_code}"
        if body:
            message += f": {body[:200]}"
        super().__init__(message)


class UpstreamConnectionError(TransportError):
    """Connection failure or timeout before a usable response arrived."""


class UpstreamRateLimitError(TransportError):
    """Rate limited by the upstream server.

    Attributes:
        retry_after: Seconds to wait before the next attempt, or None when
            the server gave no hint.
    """

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message)


class ToolRateLimitedError(UpstreamRateLimitError):
    """A ``tools/call`` answered with a rate-limit flavoured JSON-RPC error."""

    def __init__(
        self,
        code: int,
        rpc_message: str,
        retry_after: float | None = None,
    ) -> None:
        self.code = code
        self.rpc_message = rpc_message
        super().__init__(f"Tool call rate limited: {rpc_message}", retry_after=retry_after)


class UpstreamRPCError(TransportError):
    """A valid JSON-RPC envelope carrying an error for a non-tool method."""

    def __init__(self, method: str, code: int, message: str) -> None:
        self.method = method
        self.code = code
        self.rpc_message = message
        super().__init__(f"{method} failed with RPC error {code}: {message}")


class UpstreamProtocolError(TransportError):
    """The upstream response could not be understood (bad JSON, missing id)."""


class TransportCancelledError(TransportError):
    """The caller cancelled an upstream request."""


class TransportClosedError(TransportError):
    """A request was issued on a client that has already been closed."""


# ---------------------------------------------------------------------------
# Tools, model backend, turns
# ---------------------------------------------------------------------------


class ToolExecutionError(HelmsmanError):
    """A tool failed in a way the model should see as an error result.

    Local handlers may raise this; the gateway converts it into an
    ``is_error`` ToolResult carrying the message.
    """


class BackendError(HelmsmanError):
    """The model backend call failed (transport, auth, bad response)."""


class TurnError(HelmsmanError):
    """Base for errors that abort a conversational turn."""


class RoundBudgetExceededError(TurnError):
    """The model kept requesting tools past the round budget."""

    def __init__(self, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(f"Too many tool call rounds (limit: {max_rounds})")


class TurnCancelledError(TurnError):
    """The turn was cancelled between rounds."""


class TurnDeadlineExceededError(TurnError):
    """The turn ran past its configured wall-clock deadline."""

    def __init__(self, deadline_seconds: float, rounds: int) -> None:
        self.deadline_seconds = deadline_seconds
        self.rounds = rounds
        super().__init__(
            f"Turn exceeded its {deadline_seconds}s deadline after {rounds} round(s)"
        )


# ---------------------------------------------------------------------------
# Autoplay
# ---------------------------------------------------------------------------


class AutoplayError(HelmsmanError):
    """Base exception for autoplay lifecycle errors."""


class AutoplayAlreadyRunningError(AutoplayError):
    """Raised when starting autoplay while it is already running."""

    def __init__(self) -> None:
        super().__init__("Autoplay already running")


class AutoplayNotRunningError(AutoplayError):
    """Raised when stopping autoplay that is not active."""

    def __init__(self) -> None:
        super().__init__("Autoplay not active")


class AutoplayCircuitOpenError(AutoplayError):
    """Consecutive autoplay turn failures tripped the circuit breaker."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        super().__init__(
            f"Autoplay stopped after {failures} consecutive failed turns"
        )
