"""Tool gateway and built-in local tools."""

from helmsman.toolkit.credentials import (
    GET_CREDENTIALS,
    SAVE_CREDENTIALS,
    CredentialStore,
    register_credential_tools,
)
from helmsman.toolkit.gateway import ToolGateway, ToolHandler, Upstream

__all__ = [
    "CredentialStore",
    "GET_CREDENTIALS",
    "SAVE_CREDENTIALS",
    "ToolGateway",
    "ToolHandler",
    "Upstream",
    "register_credential_tools",
]
