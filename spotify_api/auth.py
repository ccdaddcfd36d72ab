import base64
import hashlib
import json
import logging
import secrets
import threading
import urllib.parse
import webbrowser
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

import httpx

from .callback_server import CallbackListener
from .errors import (
    AuthInProgressError,
    ExchangeFailedError,
    RemoteUnavailableError,
    StateMismatchError,
)
from .token_manager import Credentials, TokenManager

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
DEFAULT_AUTH_TIMEOUT_SECONDS = 300.0

DEFAULT_SCOPES = (
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-currently-playing",
    "user-library-read",
    "user-follow-read",
    "playlist-read-private",
    "playlist-read-collaborative",
)

# The callback port is a process-wide resource.
_FLOW_LOCK = threading.Lock()


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def check_spotify_credentials(config: Dict[str, Any]) -> Dict[str, Any]:
    """Validate Spotify OAuth config fields and return a structured status dict."""

    config = config or {}
    client_id = str(config.get("spotify_client_id", "")).strip()
    client_secret = str(config.get("spotify_client_secret", "")).strip()
    redirect_uri = str(config.get("spotify_redirect_uri", "")).strip()
    scopes = list(config.get("spotify_scopes", []) or [])

    status = {
        "ok": False,
        "client_id": client_id,
        "has_client_secret": bool(client_secret),
        "redirect_uri": redirect_uri,
        "scopes": scopes,
    }

    if not client_id:
        status["message"] = (
            "Missing spotify_client_id.\n"
            "Set it in config.json or export SPOTIFY_CLIENT_ID (a .env file works too)."
        )
        return status

    if not redirect_uri:
        status["message"] = (
            "Missing spotify_redirect_uri in config.json.\n"
            f"Recommended default: {DEFAULT_REDIRECT_URI}"
        )
        return status

    if not redirect_uri.startswith("http://"):
        status["message"] = (
            "spotify_redirect_uri must be a local http:// address so spotycli can receive the callback.\n"
            f"Recommended default: {DEFAULT_REDIRECT_URI}"
        )
        return status

    status["ok"] = True
    if client_secret:
        status["message"] = "Spotify credentials look OK."
    else:
        status["message"] = "spotify_client_secret is not set; using PKCE only (fine for most apps)."
    return status


def spotify_app_setup_instructions(*, redirect_uri: str = DEFAULT_REDIRECT_URI) -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or DEFAULT_REDIRECT_URI
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID (and optionally the Client Secret) into config.json\n"
        "   or export SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET\n\n"
        "Notes:\n"
        "- Playback control requires a Spotify Premium account.\n"
        "- Start playback on any device (desktop app, phone, speaker) before using spotycli.\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code": ..., "state": ...} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    for key in ("code", "state", "error"):
        if qs.get(key):
            out[key] = str(qs[key][0])
    return out


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str


@dataclass(frozen=True)
class AuthSession:
    """Everything one authorization attempt needs; discarded afterwards."""

    state: str
    pkce: PKCEPair
    redirect_uri: str
    authorize_url: str


class TokenEndpoint:
    """Form POSTs against the Spotify accounts token endpoint."""

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        redirect_uri: str = DEFAULT_REDIRECT_URI,
        *,
        timeout: float = 30.0,
        token_url: str = SPOTIFY_TOKEN_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.token_url = token_url
        self._transport = transport

    async def exchange_code(self, *, code: str, code_verifier: Optional[str] = None) -> Credentials:
        payload = await self._post_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "code_verifier": code_verifier,
            }
        )
        credentials = Credentials.from_token_response(payload)
        if not credentials.access_token:
            raise ExchangeFailedError(f"Spotify token exchange returned no access_token: {payload}")
        return credentials

    async def refresh(self, *, refresh_token: str) -> Credentials:
        payload = await self._post_form({"grant_type": "refresh_token", "refresh_token": refresh_token})

        # Spotify may omit refresh_token on refresh; keep existing.
        credentials = Credentials.from_token_response(payload, previous_refresh_token=refresh_token)
        if not credentials.access_token:
            raise ExchangeFailedError(f"Spotify token refresh returned no access_token: {payload}")
        return credentials

    async def _post_form(self, form: Dict[str, Any]) -> Dict[str, Any]:
        """POST a token request.

        Raises ExchangeFailedError when Spotify rejects the request or answers
        with something unusable, RemoteUnavailableError on transport failure.
        """

        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        auth = None
        if self.client_secret:
            auth = (self.client_id, self.client_secret)
        else:
            data["client_id"] = self.client_id

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=False, transport=self._transport
            ) as client:
                resp = await client.post(
                    self.token_url,
                    data=data,
                    auth=auth,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.TimeoutException as e:
            raise RemoteUnavailableError(f"Spotify token request timed out: {e}") from e
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"Spotify token request failed: {e}") from e

        if resp.status_code >= 500:
            raise RemoteUnavailableError(
                f"Spotify token endpoint unavailable (HTTP {resp.status_code})", status=resp.status_code
            )
        if resp.status_code >= 400:
            raise ExchangeFailedError(f"Spotify token request failed (HTTP {resp.status_code}): {resp.text}")

        try:
            payload = resp.json()
        except json.JSONDecodeError as e:
            raise ExchangeFailedError(f"Spotify token response was not JSON: {resp.text}") from e

        if not isinstance(payload, dict):
            raise ExchangeFailedError(f"Spotify token response was not an object: {payload}")

        return payload


class SpotifyAuthFlow:
    """Interactive OAuth authorization-code flow (with PKCE) for Spotify.

    run() starts a local listener on the redirect URI, sends the user to the
    authorize page, validates the callback and stores the resulting credentials.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        redirect_uri: str = DEFAULT_REDIRECT_URI,
        *,
        token_manager: Optional[TokenManager] = None,
        token_endpoint: Optional[TokenEndpoint] = None,
        scopes: Optional[Iterable[str]] = None,
        timeout: float = DEFAULT_AUTH_TIMEOUT_SECONDS,
        show_dialog: bool = True,
        open_browser: Callable[[str], Any] = webbrowser.open,
        on_authorize_url: Optional[Callable[[str], None]] = None,
    ):
        self.client_id = str(client_id or "").strip()
        self.redirect_uri = str(redirect_uri or "").strip()
        self.token_manager = token_manager or TokenManager()
        self.token_endpoint = token_endpoint or TokenEndpoint(self.client_id, client_secret, self.redirect_uri)
        self.scopes = list(scopes if scopes is not None else DEFAULT_SCOPES)
        self.timeout = float(timeout)
        self.show_dialog = show_dialog
        self.open_browser = open_browser
        self.on_authorize_url = on_authorize_url

    @staticmethod
    def generate_pkce_pair() -> PKCEPair:
        """Generate a PKCE verifier + challenge."""

        # RFC 7636: verifier length 43-128 chars, characters from ALPHA / DIGIT / "-" / "." / "_" / "~"
        verifier = secrets.token_urlsafe(64).rstrip("=")[:128]
        if len(verifier) < 43:
            verifier = (verifier + secrets.token_urlsafe(64)).rstrip("=")[:43]
        return PKCEPair(code_verifier=verifier, code_challenge=code_challenge_from_verifier(verifier))

    def get_authorize_url(self, *, code_challenge: str, state: str) -> str:
        if not self.redirect_uri:
            raise ValueError("Missing redirect_uri")

        params: Dict[str, str] = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "code_challenge_method": "S256",
            "code_challenge": str(code_challenge),
            "state": str(state),
            "show_dialog": "true" if self.show_dialog else "false",
        }
        scope_str = " ".join([str(s).strip() for s in self.scopes if str(s).strip()])
        if scope_str:
            params["scope"] = scope_str

        return f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize?{urllib.parse.urlencode(params)}"

    def begin(self) -> AuthSession:
        pkce = self.generate_pkce_pair()
        state = secrets.token_urlsafe(16).rstrip("=")
        url = self.get_authorize_url(code_challenge=pkce.code_challenge, state=state)
        return AuthSession(state=state, pkce=pkce, redirect_uri=self.redirect_uri, authorize_url=url)

    @staticmethod
    def validate_callback(session: AuthSession, params: Dict[str, str]) -> str:
        """Check the callback against the session and return the authorization code."""

        returned_state = str(params.get("state") or "")
        if not secrets.compare_digest(returned_state.encode("utf-8"), session.state.encode("utf-8")):
            raise StateMismatchError("OAuth state mismatch in callback; refusing to continue.")

        if params.get("error"):
            raise ExchangeFailedError(f"Spotify returned an error: {params['error']}")

        code = str(params.get("code") or "").strip()
        if not code:
            raise ExchangeFailedError("Callback did not contain an authorization code.")
        return code

    async def complete(self, session: AuthSession, params: Dict[str, str]) -> Credentials:
        """Validate callback params, exchange the code and persist the credentials."""

        code = self.validate_callback(session, params)
        try:
            credentials = await self.token_endpoint.exchange_code(
                code=code, code_verifier=session.pkce.code_verifier
            )
        except RemoteUnavailableError as e:
            raise ExchangeFailedError(str(e)) from e

        self.token_manager.save(credentials)
        logger.info("Stored Spotify credentials (expires at %s)", credentials.expires_at)
        return credentials

    async def run(self) -> Credentials:
        if not _FLOW_LOCK.acquire(blocking=False):
            raise AuthInProgressError("Another Spotify authorization is already running.")

        try:
            session = self.begin()
            listener = CallbackListener(session.redirect_uri)
            await listener.start()
            try:
                self._present(session.authorize_url)
                params = await listener.wait(self.timeout)
            finally:
                await listener.close()
            return await self.complete(session, params)
        finally:
            _FLOW_LOCK.release()

    def _present(self, url: str) -> None:
        if self.on_authorize_url is not None:
            self.on_authorize_url(url)
        try:
            opened = self.open_browser(url)
        except webbrowser.Error as e:
            logger.warning("Could not open a browser: %s", e)
            return
        if opened is False:
            logger.warning("No browser available; open the authorize URL manually.")
