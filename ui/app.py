import logging
from typing import Any, AsyncIterable, Dict, Optional

import httpx

from config import get_config_value
from spotify_api.auth import TokenEndpoint
from spotify_api.client import SpotifyClient
from spotify_api.session import SessionManager
from spotify_api.token_manager import TokenManager
from ui.commands import RefreshPlayback
from ui.control_loop import ControlLoop
from ui.keys import read_keys
from ui.render import TerminalRenderer

logger = logging.getLogger(__name__)


def build_session(config: Dict[str, Any], *, http_client: Optional[httpx.AsyncClient] = None) -> SessionManager:
    timeout = float(get_config_value(config, "spotify_request_timeout"))
    token_manager = TokenManager(cache_path=get_config_value(config, "spotify_token_cache_path"))
    endpoint = TokenEndpoint(
        str(config.get("spotify_client_id") or ""),
        str(config.get("spotify_client_secret") or ""),
        str(get_config_value(config, "spotify_redirect_uri")),
        timeout=timeout,
    )
    return SessionManager(
        token_manager,
        endpoint,
        http_client=http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout)),
        expiry_margin=float(get_config_value(config, "spotify_token_expiry_margin")),
    )


def build_client(session: SessionManager, config: Dict[str, Any]) -> SpotifyClient:
    return SpotifyClient(
        session,
        search_limit=int(get_config_value(config, "search_limit")),
        library_limit=int(get_config_value(config, "library_limit")),
    )


async def run_player(config: Dict[str, Any], *, keys: Optional[AsyncIterable[str]] = None) -> int:
    """Run the interactive player until the user quits; returns the exit code."""

    session = build_session(config)
    client = build_client(session, config)
    loop = ControlLoop(
        client,
        session=session,
        renderer=TerminalRenderer(),
        volume_step=int(get_config_value(config, "volume_step")),
    )
    logger.info("Starting player")
    try:
        await loop.run_command(RefreshPlayback())
        return await loop.run(keys if keys is not None else read_keys())
    finally:
        await session.aclose()
