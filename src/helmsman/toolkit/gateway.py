"""ToolGateway: one invocation surface over local and upstream tools.

Local tools are plain callables registered in-process; everything else is
forwarded to the upstream transport. The model sees a single merged tool
list and never learns which side a tool lives on.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from helmsman.exceptions import ToolExecutionError
from helmsman.models.messages import ToolDefinition, ToolResult
from helmsman.transport.protocol import METHOD_INITIALIZED

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict], ToolResult]


@runtime_checkable
class Upstream(Protocol):
    """The transport surface the gateway consumes.

    Both UpstreamClient and StubUpstreamClient satisfy it.
    """

    def initialize(self, client_info: dict | None = None, *, cancel=None) -> dict:
        ...

    def notify(self, method: str, params: dict | None = None) -> None:
        ...

    def list_tools(self, *, cancel=None) -> list[ToolDefinition]:
        ...

    def call_tool(self, name: str, arguments: dict | None = None, *, cancel=None) -> ToolResult:
        ...

    def close(self) -> None:
        ...


class ToolGateway:
    """Merges local tool handlers with an upstream tool server.

    Usage::

        gateway = ToolGateway(UpstreamClient(url))
        gateway.register_tool(definition, handler)
        gateway.initialize()
        result = gateway.call_tool("get_status", {})
    """

    def __init__(self, upstream: Upstream | None = None) -> None:
        self._upstream = upstream
        self._lock = threading.Lock()
        self._local: dict[str, tuple[ToolDefinition, ToolHandler]] = {}
        self._upstream_tools: list[ToolDefinition] = []
        self._server_info: dict | None = None

    @property
    def upstream(self) -> Upstream | None:
        return self._upstream

    @property
    def server_info(self) -> dict | None:
        return self._server_info

    @property
    def local_tool_count(self) -> int:
        with self._lock:
            return len(self._local)

    def register_tool(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        """Register a local tool. Re-registering a name replaces it."""
        with self._lock:
            if definition.name in self._local:
                logger.debug("Replacing local tool %s", definition.name)
            self._local[definition.name] = (definition, handler)

    def initialize(self, client_info: dict | None = None) -> dict | None:
        """Handshake with the upstream and fetch its tool list.

        Returns:
            The upstream initialize result, or None without an upstream.
        """
        if self._upstream is None:
            return None
        result = self._upstream.initialize(client_info)
        self._server_info = result.get("serverInfo")
        self._upstream.notify(METHOD_INITIALIZED)
        self.refresh_tools()
        return result

    def refresh_tools(self) -> list[ToolDefinition]:
        """Re-fetch the upstream tool list."""
        if self._upstream is None:
            return []
        tools = self._upstream.list_tools()
        with self._lock:
            self._upstream_tools = list(tools)
        logger.debug("Gateway has %d upstream tool(s)", len(tools))
        return list(tools)

    def list_tools(self) -> list[ToolDefinition]:
        """Upstream tools followed by local tools; a local name wins."""
        with self._lock:
            merged: dict[str, ToolDefinition] = {}
            for tool in self._upstream_tools:
                merged[tool.name] = tool
            for name, (definition, _handler) in self._local.items():
                merged.pop(name, None)
                merged[name] = definition
            return list(merged.values())

    def call_tool(
        self,
        name: str,
        arguments: dict | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ToolResult:
        """Dispatch a tool call to its local handler or to the upstream.

        Local handler failures come back as ``is_error`` results. Upstream
        transport failures propagate as TransportError.
        """
        arguments = arguments or {}
        with self._lock:
            entry = self._local.get(name)
        if entry is not None:
            return self._call_local(name, entry[1], arguments)
        if self._upstream is None:
            return ToolResult.error(f"Unknown tool: {name}")
        return self._upstream.call_tool(name, arguments, cancel=cancel)

    def close(self) -> None:
        if self._upstream is not None:
            self._upstream.close()

    def __enter__(self) -> ToolGateway:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _call_local(self, name: str, handler: ToolHandler, arguments: dict) -> ToolResult:
        try:
            result = handler(arguments)
        except ToolExecutionError as exc:
            return ToolResult.error(str(exc))
        except Exception as exc:
            logger.debug("Local tool %s failed: %s", name, exc, exc_info=True)
            return ToolResult.error(f"{type(exc).__name__}: {exc}")
        if not isinstance(result, ToolResult):
            return ToolResult.from_text(str(result))
        return result
