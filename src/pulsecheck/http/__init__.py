"""HTTP collaborators: backend API client and ping transport."""

from pulsecheck.http.client import ApiClient, user_agent
from pulsecheck.http.ping import HttpPingTransport, PingTransport

__all__ = [
    "ApiClient",
    "HttpPingTransport",
    "PingTransport",
    "user_agent",
]
