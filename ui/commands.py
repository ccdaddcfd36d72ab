"""Commands emitted by ViewState transitions and executed by the ControlLoop."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from spotify_api.models import Track


class View(Enum):
    SEARCH = "Search"
    LIBRARY = "Library"
    PLAYLISTS = "Playlists"
    ALBUMS = "Albums"
    ARTISTS = "Artists"


VIEW_KEYS = {
    "1": View.SEARCH,
    "2": View.LIBRARY,
    "3": View.PLAYLISTS,
    "4": View.ALBUMS,
    "5": View.ARTISTS,
}


class Command:
    """Marker base class."""

    # Commands that talk to the playback device.
    playback = False


@dataclass(frozen=True)
class Quit(Command):
    pass


@dataclass(frozen=True)
class Search(Command):
    query: str
    generation: int


@dataclass(frozen=True)
class LoadView(Command):
    view: View


@dataclass(frozen=True)
class ShowAuthStatus(Command):
    pass


@dataclass(frozen=True)
class PlayTrack(Command):
    track: Track
    playback = True


@dataclass(frozen=True)
class PlayContext(Command):
    uri: str
    label: str
    playback = True


@dataclass(frozen=True)
class TogglePlayback(Command):
    # True resumes, False pauses; decided when the key is pressed.
    play: bool
    playback = True


@dataclass(frozen=True)
class NextTrack(Command):
    playback = True


@dataclass(frozen=True)
class PreviousTrack(Command):
    playback = True


@dataclass(frozen=True)
class ChangeVolume(Command):
    direction: int
    # Absolute volume to set; None when no device volume is known yet.
    target: Optional[int] = None
    playback = True


@dataclass(frozen=True)
class RefreshPlayback(Command):
    pass
