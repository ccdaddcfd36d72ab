"""Spotify Web API integration: OAuth authorization, token session and an async client."""

from .auth import SpotifyAuthFlow, TokenEndpoint
from .client import SpotifyClient
from .session import SessionManager
from .token_manager import Credentials, TokenManager

__all__ = [
    "Credentials",
    "SessionManager",
    "SpotifyAuthFlow",
    "SpotifyClient",
    "TokenEndpoint",
    "TokenManager",
]
