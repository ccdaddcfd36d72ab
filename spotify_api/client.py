import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .errors import (
    ApiError,
    MalformedResponseError,
    NoActiveDeviceError,
    NotFoundError,
    PremiumRequiredError,
    RateLimitedError,
    RemoteUnavailableError,
    UnauthenticatedError,
)
from .models import Album, Artist, Device, PlaybackStatus, Playlist, SearchResults, Track
from .session import SessionManager
from .token_manager import Credentials

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"

SEARCH_KINDS = ("track", "album", "artist", "playlist")
DEFAULT_SEARCH_LIMIT = 20
DEFAULT_LIBRARY_LIMIT = 200


def _error_details(response: httpx.Response) -> Dict[str, str]:
    """Pull {message, reason} out of a Web API error body when there is one."""

    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {"message": response.text.strip(), "reason": ""}

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return {"message": str(error.get("message") or ""), "reason": str(error.get("reason") or "")}
    if isinstance(error, str):
        return {"message": str(payload.get("error_description") or error), "reason": ""}
    return {"message": "", "reason": ""}


def raise_for_status(response: httpx.Response, *, playback: bool = False) -> None:
    """Translate a Web API error response into the spotify_api error taxonomy."""

    status = response.status_code
    if status < 400:
        return

    details = _error_details(response)
    reason = details["reason"]
    message = details["message"] or f"HTTP {status}"
    kwargs = {"status": status, "reason": reason or None}

    if reason == "NO_ACTIVE_DEVICE":
        raise NoActiveDeviceError(f"No active Spotify device: {message}", **kwargs)
    if reason == "PREMIUM_REQUIRED":
        raise PremiumRequiredError(f"Spotify Premium required: {message}", **kwargs)

    if status == 401:
        raise UnauthenticatedError(f"Spotify rejected the access token: {message}")
    if status == 403:
        raise PremiumRequiredError(f"Spotify refused the request: {message}", **kwargs)
    if status == 404:
        if playback:
            raise NoActiveDeviceError(f"No active Spotify device: {message}", **kwargs)
        raise NotFoundError(f"Not found: {message}", **kwargs)
    if status == 429:
        retry_after: Optional[float]
        try:
            retry_after = float(response.headers.get("Retry-After", ""))
        except ValueError:
            retry_after = None
        raise RateLimitedError(f"Rate limited by Spotify: {message}", retry_after=retry_after, **kwargs)
    if status >= 500:
        raise RemoteUnavailableError(f"Spotify is unavailable (HTTP {status}): {message}", **kwargs)

    raise ApiError(f"Spotify API error {status}: {message}", **kwargs)


class SpotifyClient:
    """Async Spotify Web API client.

    Every method builds one request (or one per page) and sends it through
    SessionManager.authorized_request, so tokens are always fresh.
    """

    def __init__(
        self,
        session: SessionManager,
        *,
        base_url: str = SPOTIFY_API_BASE_URL,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        library_limit: int = DEFAULT_LIBRARY_LIMIT,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.search_limit = int(search_limit)
        self.library_limit = int(library_limit)

    # -----------------
    # HTTP helpers
    # -----------------

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        playback: bool = False,
    ) -> Dict[str, Any]:
        """Make a Web API request and return the parsed JSON object ({} for empty bodies)."""

        url = f"{self.base_url}{path}"
        clean_params = {k: str(v) for k, v in (params or {}).items() if v is not None}

        def build(credentials: Credentials) -> httpx.Request:
            return self.session.http.build_request(
                method.upper(),
                url,
                params=clean_params or None,
                json=json_body,
                headers={"Authorization": credentials.authorization_header, "Accept": "application/json"},
            )

        response = await self.session.authorized_request(build)
        raise_for_status(response, playback=playback)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponseError(
                f"Spotify response was not JSON (status {response.status_code})", status=response.status_code
            ) from e

        if not isinstance(payload, dict):
            raise MalformedResponseError("Spotify response was not a JSON object", status=response.status_code)
        return payload

    async def _paginate(
        self, path: str, *, params: Optional[Dict[str, Any]] = None, max_items: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Fetch pages of an endpoint that returns {items, total, limit, offset}."""

        out: List[Dict[str, Any]] = []
        limit = int((params or {}).get("limit") or 50)
        offset = int((params or {}).get("offset") or 0)
        cap = self.library_limit if max_items is None else int(max_items)

        while len(out) < cap:
            page = await self.request_json("GET", path, params={**(params or {}), "limit": limit, "offset": offset})
            items = page.get("items")
            if not isinstance(items, list):
                raise MalformedResponseError(f"Expected a paged list from {path}")
            out.extend([x for x in items if isinstance(x, dict)])

            total = page.get("total")
            offset += len(items)
            if not items or total is None or offset >= int(total):
                break

        return out[:cap]

    # -----------------
    # Catalog
    # -----------------

    async def search_catalog(self, query: str, kinds: Iterable[str] = SEARCH_KINDS) -> SearchResults:
        kind_list = [k for k in kinds if k in SEARCH_KINDS]
        if not kind_list:
            raise ValueError(f"kinds must include at least one of {SEARCH_KINDS}")

        payload = await self.request_json(
            "GET",
            "/search",
            params={"q": query, "type": ",".join(kind_list), "limit": self.search_limit},
        )

        def items(key: str) -> List[Any]:
            section = payload.get(key)
            if section is None:
                return []
            if not isinstance(section, dict) or not isinstance(section.get("items"), list):
                raise MalformedResponseError(f"Search response has an invalid '{key}' section")
            return section["items"]

        return SearchResults(
            tracks=[t for t in map(Track.from_api, items("tracks")) if t],
            albums=[a for a in map(Album.from_api, items("albums")) if a],
            artists=[a for a in map(Artist.from_api, items("artists")) if a],
            playlists=[p for p in map(Playlist.from_api, items("playlists")) if p],
        )

    async def search(self, query: str, kinds: Iterable[str] = SEARCH_KINDS) -> List[Track]:
        results = await self.search_catalog(query, kinds)
        logger.info("Search %r returned %d tracks", query, len(results.tracks))
        return results.tracks

    async def _get_item(self, kind: str, item_id: str, parse):
        payload = await self.request_json("GET", f"/{kind}s/{item_id}")
        item = parse(payload)
        if item is None:
            raise MalformedResponseError(f"Spotify returned no usable {kind} for id {item_id!r}")
        return item

    async def get_track(self, track_id: str) -> Track:
        return await self._get_item("track", track_id, Track.from_api)

    async def get_album(self, album_id: str) -> Album:
        return await self._get_item("album", album_id, Album.from_api)

    async def get_artist(self, artist_id: str) -> Artist:
        return await self._get_item("artist", artist_id, Artist.from_api)

    async def get_playlist(self, playlist_id: str) -> Playlist:
        return await self._get_item("playlist", playlist_id, Playlist.from_api)

    async def _browse(self, path: str, key: str, limit: Optional[int]) -> List[Any]:
        # Browse endpoints wrap one paging object: {<key>: {items, total, ...}}
        payload = await self.request_json("GET", path, params={"limit": limit or self.search_limit})
        section = payload.get(key)
        if not isinstance(section, dict) or not isinstance(section.get("items"), list):
            raise MalformedResponseError(f"Browse response from {path} has no '{key}' section")
        return section["items"]

    async def get_featured_playlists(self, limit: Optional[int] = None) -> List[Playlist]:
        items = await self._browse("/browse/featured-playlists", "playlists", limit)
        return [p for p in map(Playlist.from_api, items) if p]

    async def get_new_releases(self, limit: Optional[int] = None) -> List[Album]:
        items = await self._browse("/browse/new-releases", "albums", limit)
        return [a for a in map(Album.from_api, items) if a]

    # -----------------
    # Library
    # -----------------

    async def me(self) -> Dict[str, Any]:
        return await self.request_json("GET", "/me")

    async def get_library(self) -> List[Track]:
        # Endpoint shape: {items: [{added_at, track: {...}}], total, ...}
        items = await self._paginate("/me/tracks", params={"limit": 50})
        return [t for t in (Track.from_api(item.get("track")) for item in items) if t]

    async def get_playlists(self) -> List[Playlist]:
        items = await self._paginate("/me/playlists", params={"limit": 50})
        return [p for p in map(Playlist.from_api, items) if p]

    async def get_saved_albums(self) -> List[Album]:
        items = await self._paginate("/me/albums", params={"limit": 50})
        return [a for a in (Album.from_api(item.get("album")) for item in items) if a]

    async def get_followed_artists(self) -> List[Artist]:
        # Cursor-paged: {artists: {items, next, cursors: {after}}}
        out: List[Artist] = []
        after: Optional[str] = None
        while len(out) < self.library_limit:
            payload = await self.request_json(
                "GET", "/me/following", params={"type": "artist", "limit": 50, "after": after}
            )
            section = payload.get("artists")
            if not isinstance(section, dict) or not isinstance(section.get("items"), list):
                raise MalformedResponseError("Followed artists response has no 'artists' section")
            out.extend(a for a in map(Artist.from_api, section["items"]) if a)

            cursors = section.get("cursors") if isinstance(section.get("cursors"), dict) else {}
            after = cursors.get("after")
            if not section.get("next") or not after or not section["items"]:
                break
        return out[: self.library_limit]

    # -----------------
    # Playback
    # -----------------

    async def get_devices(self) -> List[Device]:
        payload = await self.request_json("GET", "/me/player/devices")
        devices = payload.get("devices")
        if not isinstance(devices, list):
            raise MalformedResponseError("Devices response has no 'devices' list")
        return [d for d in map(Device.from_api, devices) if d]

    async def get_playback_status(self) -> PlaybackStatus:
        # 204 (empty body) means nothing is playing on any device.
        payload = await self.request_json("GET", "/me/player")
        return PlaybackStatus.from_api(payload)

    async def play(self, track_id: Optional[str] = None, *, context_uri: Optional[str] = None) -> None:
        """Start a track or a context (album/playlist/artist); resume when both are None."""

        body: Optional[Dict[str, Any]] = None
        if track_id:
            uri = track_id if track_id.startswith("spotify:") else f"spotify:track:{track_id}"
            body = {"uris": [uri]}
        elif context_uri:
            body = {"context_uri": context_uri}
        await self.request_json("PUT", "/me/player/play", json_body=body, playback=True)

    async def pause(self) -> None:
        await self.request_json("PUT", "/me/player/pause", playback=True)

    async def next(self) -> None:
        await self.request_json("POST", "/me/player/next", playback=True)

    async def previous(self) -> None:
        await self.request_json("POST", "/me/player/previous", playback=True)

    async def set_volume(self, percent: int) -> int:
        volume = min(100, max(0, int(percent)))
        await self.request_json("PUT", "/me/player/volume", params={"volume_percent": volume}, playback=True)
        return volume
