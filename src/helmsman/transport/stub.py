"""In-process stand-in for the upstream game server.

Used by ``helmsman chat --offline`` and by tests that need a working
upstream without a network. Answers a handful of read-only game tools
with fixed JSON documents.
"""

from __future__ import annotations

import json
import threading

from helmsman.models.messages import ToolDefinition, ToolResult
from helmsman.transport.protocol import PROTOCOL_VERSION

STUB_SERVER_NAME = "spacemolt-stub"
STUB_TICK = 42

_EMPTY_SCHEMA = {"type": "object", "properties": {}}

_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition("get_status", "Get player, ship and location status.", _EMPTY_SCHEMA),
    ToolDefinition("get_system", "Get the current star system.", _EMPTY_SCHEMA),
    ToolDefinition("get_ship", "Get ship details and cargo.", _EMPTY_SCHEMA),
    ToolDefinition("get_poi", "Get the current point of interest.", _EMPTY_SCHEMA),
    ToolDefinition("get_notifications", "Drain pending game notifications.", _EMPTY_SCHEMA),
)

_RESPONSES: dict[str, dict] = {
    "get_status": {
        "player": {"id": "stub-player", "username": "stub", "credits": 1000},
        "ship": {"id": "stub-ship", "name": "Stub Runner", "hull": 100, "fuel": 100},
        "current_tick": STUB_TICK,
    },
    "get_system": {
        "id": "sol",
        "name": "Sol",
        "pois": ["earth", "asteroid-belt"],
        "current_tick": STUB_TICK,
    },
    "get_ship": {
        "id": "stub-ship",
        "name": "Stub Runner",
        "cargo": [],
        "cargo_capacity": 50,
        "current_tick": STUB_TICK,
    },
    "get_poi": {
        "id": "earth",
        "name": "Earth",
        "type": "planet",
        "current_tick": STUB_TICK,
    },
    "get_notifications": {
        "count": 0,
        "notifications": [],
        "remaining": 0,
        "current_tick": STUB_TICK,
    },
}


class StubUpstreamClient:
    """Offline upstream with the same surface as UpstreamClient."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls = 0
        self._closed = False

    @property
    def call_count(self) -> int:
        with self._lock:
            return self._calls

    @property
    def closed(self) -> bool:
        return self._closed

    def initialize(self, client_info: dict | None = None, *, cancel=None) -> dict:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": STUB_SERVER_NAME, "version": "0.0.0"},
        }

    def notify(self, method: str, params: dict | None = None) -> None:
        return None

    def list_tools(self, *, cancel=None) -> list[ToolDefinition]:
        return list(_TOOLS)

    def call_tool(self, name: str, arguments: dict | None = None, *, cancel=None) -> ToolResult:
        with self._lock:
            self._calls += 1
        payload = _RESPONSES.get(name)
        if payload is None:
            return ToolResult.error(f"Unknown tool: {name}")
        return ToolResult.from_text(json.dumps(payload))

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> StubUpstreamClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
