import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import TokenStoreError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_CACHE_PATH = os.path.join("data", "spotify_tokens.json")
DEFAULT_EXPIRY_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class Credentials:
    """Canonical token payload stored by TokenManager."""

    access_token: str
    refresh_token: str
    expires_at: float
    token_type: str = "Bearer"
    scope: Optional[str] = None

    @staticmethod
    def from_token_response(
        payload: Dict[str, Any],
        *,
        now: Optional[float] = None,
        previous_refresh_token: Optional[str] = None,
    ) -> "Credentials":
        """Convert a Spotify token response into Credentials.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (omitted on most refreshes)
        - scope (space-delimited string)
        """

        now_ts = float(time.time() if now is None else now)
        expires_in = float(payload.get("expires_in") or 0)

        return Credentials(
            access_token=str(payload.get("access_token") or ""),
            refresh_token=str(payload.get("refresh_token") or previous_refresh_token or ""),
            expires_at=now_ts + expires_in,
            token_type=str(payload.get("token_type") or "Bearer"),
            scope=payload.get("scope"),
        )

    @property
    def authorization_header(self) -> str:
        # Spotify answers with "Bearer" but expects the capitalized form back.
        token_type = "Bearer" if self.token_type.lower() == "bearer" else self.token_type
        return f"{token_type} {self.access_token}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "token_type": self.token_type,
            "scope": self.scope,
        }


class TokenManager:
    """Persists the current credentials as a single JSON object."""

    def __init__(self, *, cache_path: str = DEFAULT_TOKEN_CACHE_PATH):
        self.cache_path = cache_path

    def ensure_cache_dir(self) -> None:
        directory = os.path.dirname(self.cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def load(self) -> Optional[Credentials]:
        """Load cached credentials; a missing or corrupt file yields None."""

        if not os.path.exists(self.cache_path):
            return None

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable token cache %s: %s", self.cache_path, e)
            return None

        if not isinstance(data, dict):
            logger.warning("Ignoring token cache %s: not a JSON object", self.cache_path)
            return None

        try:
            credentials = Credentials(
                access_token=str(data.get("access_token") or ""),
                refresh_token=str(data.get("refresh_token") or ""),
                expires_at=float(data.get("expires_at", 0)),
                token_type=str(data.get("token_type") or "Bearer"),
                scope=data.get("scope"),
            )
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring token cache %s: %s", self.cache_path, e)
            return None

        if not credentials.access_token:
            return None
        return credentials

    def save(self, credentials: Credentials) -> None:
        """Persist credentials to disk, raising TokenStoreError on I/O failure."""

        try:
            self.ensure_cache_dir()
            with open(self.cache_path, "w", encoding="utf-8") as f:
                json.dump(credentials.to_dict(), f, indent=2)
        except OSError as e:
            raise TokenStoreError(f"Could not write token cache {self.cache_path}: {e}") from e

    def clear(self) -> bool:
        try:
            if os.path.exists(self.cache_path):
                os.remove(self.cache_path)
            return True
        except OSError as e:
            logger.error("Could not remove token cache %s: %s", self.cache_path, e)
            return False

    @staticmethod
    def is_expired(
        credentials: Credentials,
        *,
        skew_seconds: float = DEFAULT_EXPIRY_MARGIN_SECONDS,
        now: Optional[float] = None,
    ) -> bool:
        now_ts = time.time() if now is None else now
        return now_ts >= float(credentials.expires_at) - float(skew_seconds)
