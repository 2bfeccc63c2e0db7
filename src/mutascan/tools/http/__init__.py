"""HTTP helpers for mutascan."""

from .client import USER_AGENTS, HTTPClient, HTTPResponse

__all__ = [
    "HTTPClient",
    "HTTPResponse",
    "USER_AGENTS",
]
