"""Local credential tools bound to one session.

The model can store and recall its game login without the session id ever
appearing as a tool parameter: handlers close over it.
"""

from __future__ import annotations

import json
from typing import Protocol

from helmsman.models.messages import ToolDefinition, ToolResult
from helmsman.toolkit.gateway import ToolGateway, ToolHandler

SAVE_CREDENTIALS = ToolDefinition(
    name="save_credentials",
    description=(
        "Save your game username and password so they can be recalled after "
        "a restart. Call this right after registering or logging in."
    ),
    parameters={
        "type": "object",
        "properties": {
            "username": {"type": "string", "description": "Game username"},
            "password": {"type": "string", "description": "Game password"},
        },
        "required": ["username", "password"],
    },
)

GET_CREDENTIALS = ToolDefinition(
    name="get_credentials",
    description="Retrieve the game username and password saved for this session.",
    parameters={"type": "object", "properties": {}},
)


class CredentialStore(Protocol):
    def save_credentials(self, session_id: str, username: str, password: str) -> None:
        ...

    def get_credentials(self, session_id: str) -> tuple[str, str] | None:
        ...


def make_save_credentials(store: CredentialStore, session_id: str) -> ToolHandler:
    def handler(arguments: dict) -> ToolResult:
        username = str(arguments.get("username") or "").strip()
        password = str(arguments.get("password") or "")
        if not username:
            return ToolResult.error("Username cannot be empty")
        if not password:
            return ToolResult.error("Password cannot be empty")
        store.save_credentials(session_id, username, password)
        return ToolResult.from_text(f"Credentials saved successfully for user '{username}'")

    return handler


def make_get_credentials(store: CredentialStore, session_id: str) -> ToolHandler:
    def handler(arguments: dict) -> ToolResult:
        creds = store.get_credentials(session_id)
        if creds is None:
            return ToolResult.from_text("No credentials saved for this session")
        username, password = creds
        return ToolResult.from_text(json.dumps({"username": username, "password": password}))

    return handler


def register_credential_tools(
    gateway: ToolGateway, store: CredentialStore, session_id: str
) -> None:
    """Register ``save_credentials`` and ``get_credentials`` on a gateway."""
    gateway.register_tool(SAVE_CREDENTIALS, make_save_credentials(store, session_id))
    gateway.register_tool(GET_CREDENTIALS, make_get_credentials(store, session_id))
