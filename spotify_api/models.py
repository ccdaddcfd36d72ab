from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


def _normalize_artist_list(artists: Any) -> str:
    if not isinstance(artists, list):
        return ""
    names = []
    seen = set()
    for a in artists:
        if not isinstance(a, dict) or not a.get("name"):
            continue
        name = str(a.get("name")).strip()
        # de-dupe preserving order
        key = name.casefold()
        if not name or key in seen:
            continue
        seen.add(key)
        names.append(name)
    return ", ".join(names)


def _text(obj: Dict[str, Any], key: str) -> str:
    return str(obj.get(key) or "").strip()


def format_duration(duration_ms: int) -> str:
    total_seconds = max(0, int(duration_ms)) // 1000
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


@dataclass(frozen=True)
class Track:
    id: str
    title: str
    artist: str
    album: str
    duration_ms: int
    uri: str = ""

    @property
    def duration(self) -> str:
        return format_duration(self.duration_ms)

    @property
    def label(self) -> str:
        return f"{self.title} - {self.artist}" if self.artist else self.title

    @staticmethod
    def from_api(track_obj: Any) -> Optional["Track"]:
        """Build a Track from a Web API track object.

        Local files and episodes without an id are skipped (None).
        """

        if not isinstance(track_obj, dict) or track_obj.get("is_local"):
            return None

        track_id = _text(track_obj, "id")
        if not track_id:
            return None

        album = track_obj.get("album")
        try:
            duration_ms = int(track_obj.get("duration_ms") or 0)
        except (TypeError, ValueError):
            duration_ms = 0

        return Track(
            id=track_id,
            title=_text(track_obj, "name"),
            artist=_normalize_artist_list(track_obj.get("artists")),
            album=_text(album, "name") if isinstance(album, dict) else "",
            duration_ms=duration_ms,
            uri=_text(track_obj, "uri") or f"spotify:track:{track_id}",
        )


@dataclass(frozen=True)
class Album:
    id: str
    name: str
    artist: str
    uri: str
    total_tracks: int = 0
    release_date: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.name} - {self.artist}" if self.artist else self.name

    @staticmethod
    def from_api(album_obj: Any) -> Optional["Album"]:
        if not isinstance(album_obj, dict) or not _text(album_obj, "id"):
            return None
        album_id = _text(album_obj, "id")
        return Album(
            id=album_id,
            name=_text(album_obj, "name"),
            artist=_normalize_artist_list(album_obj.get("artists")),
            uri=_text(album_obj, "uri") or f"spotify:album:{album_id}",
            total_tracks=int(album_obj.get("total_tracks") or 0),
            release_date=album_obj.get("release_date"),
        )


@dataclass(frozen=True)
class Artist:
    id: str
    name: str
    uri: str
    genres: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.name

    @staticmethod
    def from_api(artist_obj: Any) -> Optional["Artist"]:
        if not isinstance(artist_obj, dict) or not _text(artist_obj, "id"):
            return None
        artist_id = _text(artist_obj, "id")
        genres = artist_obj.get("genres") if isinstance(artist_obj.get("genres"), list) else []
        return Artist(
            id=artist_id,
            name=_text(artist_obj, "name"),
            uri=_text(artist_obj, "uri") or f"spotify:artist:{artist_id}",
            genres=tuple(str(g) for g in genres),
        )


@dataclass(frozen=True)
class Playlist:
    id: str
    name: str
    uri: str
    owner: str = ""
    tracks_total: Optional[int] = None

    @property
    def label(self) -> str:
        total = f" ({self.tracks_total} tracks)" if self.tracks_total is not None else ""
        return f"{self.name}{total}"

    @staticmethod
    def from_api(playlist_obj: Any) -> Optional["Playlist"]:
        if not isinstance(playlist_obj, dict) or not _text(playlist_obj, "id"):
            return None
        playlist_id = _text(playlist_obj, "id")
        owner = playlist_obj.get("owner")
        tracks = playlist_obj.get("tracks")
        total = tracks.get("total") if isinstance(tracks, dict) else None
        return Playlist(
            id=playlist_id,
            name=_text(playlist_obj, "name") or "(unnamed)",
            uri=_text(playlist_obj, "uri") or f"spotify:playlist:{playlist_id}",
            owner=(_text(owner, "display_name") or _text(owner, "id")) if isinstance(owner, dict) else "",
            tracks_total=int(total) if isinstance(total, int) else None,
        )


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    type: str
    is_active: bool
    volume_percent: Optional[int] = None

    @staticmethod
    def from_api(device_obj: Any) -> Optional["Device"]:
        if not isinstance(device_obj, dict):
            return None
        volume = device_obj.get("volume_percent")
        return Device(
            id=_text(device_obj, "id"),
            name=_text(device_obj, "name"),
            type=_text(device_obj, "type"),
            is_active=bool(device_obj.get("is_active")),
            volume_percent=int(volume) if isinstance(volume, (int, float)) else None,
        )


@dataclass(frozen=True)
class PlaybackStatus:
    is_playing: bool = False
    current_track: Optional[Track] = None
    volume_percent: int = 0
    device_available: bool = False
    device_name: str = ""

    @staticmethod
    def from_api(payload: Any) -> "PlaybackStatus":
        if not isinstance(payload, dict) or not payload:
            return PlaybackStatus()

        device = Device.from_api(payload.get("device"))
        volume = device.volume_percent if device and device.volume_percent is not None else 0
        return PlaybackStatus(
            is_playing=bool(payload.get("is_playing")),
            current_track=Track.from_api(payload.get("item")),
            volume_percent=min(100, max(0, volume)),
            device_available=device is not None,
            device_name=device.name if device else "",
        )


@dataclass(frozen=True)
class SearchResults:
    tracks: List[Track] = field(default_factory=list)
    albums: List[Album] = field(default_factory=list)
    artists: List[Artist] = field(default_factory=list)
    playlists: List[Playlist] = field(default_factory=list)
