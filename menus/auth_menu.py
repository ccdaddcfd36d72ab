import asyncio
import time
import webbrowser

import questionary

from config import get_config_value
from spotify_api.auth import SpotifyAuthFlow, check_spotify_credentials, spotify_app_setup_instructions
from spotify_api.errors import (
    AuthError,
    AuthTimeoutError,
    StateMismatchError,
    TokenStoreError,
)
from spotify_api.token_manager import TokenManager
from utils.logger import log_error, log_info, log_success, log_warning


def _token_manager(config: dict) -> TokenManager:
    return TokenManager(cache_path=get_config_value(config, "spotify_token_cache_path"))


def spotify_setup_help(config: dict) -> None:
    creds = check_spotify_credentials(config)
    log_info("\n" + "=" * 72)
    log_info("SPOTIFY WEB API SETUP")
    log_info("=" * 72)
    log_info(spotify_app_setup_instructions(redirect_uri=creds.get("redirect_uri") or ""))
    log_info("")
    log_info("Current config status:")
    log_info(f"- spotify_client_id: {'SET' if creds.get('client_id') else 'NOT SET'}")
    log_info(f"- spotify_client_secret: {'SET' if creds.get('has_client_secret') else 'NOT SET (PKCE only)'}")
    log_info(f"- spotify_redirect_uri: {creds.get('redirect_uri') or ''}")
    log_info(f"- spotify_scopes: {', '.join(creds.get('scopes') or [])}")
    log_info("")
    if not creds.get("ok"):
        log_warning(creds.get("message") or "Spotify credentials are incomplete.")
    else:
        log_info(creds.get("message") or "Spotify credentials look OK.")
    log_info("=" * 72 + "\n")


def spotify_token_status(config: dict) -> str:
    tm = _token_manager(config)
    token = tm.load()
    if token is None:
        return "No cached Spotify token found."
    margin = float(get_config_value(config, "spotify_token_expiry_margin"))
    expired = tm.is_expired(token, skew_seconds=margin)
    exp_str = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(float(token.expires_at)))
    refresh = "YES" if token.refresh_token else "NO"
    return f"Token cached: YES | Expired: {'YES' if expired else 'NO'} | Refresh token: {refresh} | Expires at: {exp_str}"


def spotify_authenticate(config: dict) -> bool:
    """Run the browser-based authorization flow; returns True on success."""

    creds = check_spotify_credentials(config)
    if not creds.get("ok"):
        log_warning(creds.get("message") or "Spotify credentials are incomplete.")
        spotify_setup_help(config)
        return False

    open_browser = questionary.confirm("Open the authorize URL in your default browser?", default=True).ask()
    timeout = float(get_config_value(config, "spotify_auth_timeout"))

    def show_url(url: str) -> None:
        log_info("\n" + "=" * 72)
        log_info("SPOTIFY AUTHENTICATION")
        log_info("=" * 72)
        log_info("1) Approve access in the browser (or open the URL below yourself).")
        log_info(f"2) Spotify redirects to {creds['redirect_uri']}, where spotycli is listening.")
        log_info(f"3) Waiting up to {int(timeout)}s for the redirect...")
        log_info("")
        log_info(f"Authorize URL:\n{url}")
        log_info("=" * 72)

    flow = SpotifyAuthFlow(
        creds["client_id"],
        str(config.get("spotify_client_secret") or ""),
        creds["redirect_uri"],
        token_manager=_token_manager(config),
        scopes=creds.get("scopes") or None,
        timeout=timeout,
        open_browser=webbrowser.open if open_browser else (lambda url: True),
        on_authorize_url=show_url,
    )

    try:
        credentials = asyncio.run(flow.run())
    except StateMismatchError:
        log_error("OAuth state mismatch. For safety, cancelling this authentication attempt.")
        log_info("Tip: Make sure you approve the most recent login attempt in the browser.")
        return False
    except AuthTimeoutError as e:
        log_error(f"{e}. Run the authentication again when you are ready.")
        return False
    except (AuthError, TokenStoreError) as e:
        log_error(f"Spotify authentication failed: {e}")
        return False

    exp_str = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(float(credentials.expires_at)))
    log_success(f"Spotify authentication successful. Token expires at: {exp_str}")
    return True


def spotify_logout(config: dict) -> None:
    if not questionary.confirm("Remove the cached Spotify token?", default=False).ask():
        return
    if _token_manager(config).clear():
        log_success("Spotify token removed.")
    else:
        log_error("Could not remove the Spotify token cache.")
