from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from spotify_api.models import PlaybackStatus, Track
from ui.commands import (
    VIEW_KEYS,
    ChangeVolume,
    Command,
    LoadView,
    NextTrack,
    PlayContext,
    PlayTrack,
    PreviousTrack,
    Quit,
    Search,
    ShowAuthStatus,
    TogglePlayback,
    View,
)
from ui.keys import KEY_BACKSPACE, KEY_CLEAR_LINE, KEY_DOWN, KEY_ENTER, KEY_ESCAPE, KEY_INTERRUPT, KEY_UP

PLAYBACK_DISABLED_MESSAGE = "Playback controls are disabled until you re-authenticate (press u for details)."
DEFAULT_VOLUME_STEP = 10


def clamp_index(index: int, length: int) -> int:
    if length <= 0:
        return 0
    return min(max(index, 0), length - 1)


def clamp_volume(percent: int) -> int:
    return min(100, max(0, int(percent)))


@dataclass
class ListState:
    """Items of a browse view plus the highlighted row."""

    items: List[Any] = field(default_factory=list)
    selected_index: int = 0
    loaded: bool = False
    # A LoadView for this list is in flight.
    loading: bool = False

    def replace(self, items: Sequence[Any]) -> None:
        self.items = list(items)
        self.selected_index = 0
        self.loaded = True
        self.loading = False

    def move(self, delta: int) -> None:
        if not self.items:
            return
        self.selected_index = clamp_index(self.selected_index + delta, len(self.items))

    @property
    def selected(self) -> Optional[Any]:
        if not self.items:
            return None
        return self.items[self.selected_index]


@dataclass
class SearchState(ListState):
    query_buffer: str = ""
    input_mode: bool = False
    # Bumped for every submitted query; older responses are dropped.
    generation: int = 0

    @property
    def results(self) -> List[Track]:
        return self.items


class ViewState:
    """Screen state machine driven by key names.

    handle_key() performs the transition and returns the Command (if any) the
    ControlLoop has to execute. Nothing here does I/O.
    """

    def __init__(self, *, volume_step: int = DEFAULT_VOLUME_STEP):
        self.volume_step = int(volume_step)
        self.active_view = View.SEARCH
        self.search = SearchState()
        self.lists: Dict[View, ListState] = {
            View.SEARCH: self.search,
            View.LIBRARY: ListState(),
            View.PLAYLISTS: ListState(),
            View.ALBUMS: ListState(),
            View.ARTISTS: ListState(),
        }
        self.playback = PlaybackStatus()
        # Outcome of playback commands still in flight; keys build on these, not on
        # the last refreshed status.
        self.pending_volume: Optional[int] = None
        self.pending_playing: Optional[bool] = None
        self.playback_enabled = True
        self.status_message = ""
        self.running = True

    @property
    def input_mode(self) -> bool:
        return self.search.input_mode

    @property
    def active_list(self) -> ListState:
        return self.lists[self.active_view]

    # -----------------
    # Transitions
    # -----------------

    def handle_key(self, key: str) -> Optional[Command]:
        if key == KEY_INTERRUPT:
            return self.quit()
        if self.search.input_mode:
            return self._handle_input_key(key)
        return self._handle_normal_key(key)

    def _handle_input_key(self, key: str) -> Optional[Command]:
        if key == KEY_ENTER:
            query = self.search.query_buffer.strip()
            if not query:
                return None
            self.search.generation += 1
            self.search.input_mode = False
            self.status_message = f"Searching for '{query}'..."
            return Search(query=query, generation=self.search.generation)

        if key == KEY_ESCAPE:
            self.search.input_mode = False
        elif key == KEY_BACKSPACE:
            self.search.query_buffer = self.search.query_buffer[:-1]
        elif key == KEY_CLEAR_LINE:
            self.search.query_buffer = ""
        elif len(key) == 1 and key.isprintable():
            self.search.query_buffer += key
        return None

    def _handle_normal_key(self, key: str) -> Optional[Command]:
        if key == "q":
            return self.quit()
        if key in VIEW_KEYS:
            return self.switch_view(VIEW_KEYS[key])
        if key == "/":
            self.switch_view(View.SEARCH)
            self.search.input_mode = True
            return None
        if key == KEY_UP:
            self.active_list.move(-1)
            return None
        if key == KEY_DOWN:
            self.active_list.move(1)
            return None
        if key == "u":
            return ShowAuthStatus()
        if key == KEY_ENTER:
            return self._guard(self._play_selected())
        if key == " ":
            return self._guard(TogglePlayback(play=not self.expected_playing))
        if key == "n":
            return self._guard(NextTrack())
        if key == "p":
            return self._guard(PreviousTrack())
        if key == "+":
            return self._guard(self._volume_command(1))
        if key == "-":
            return self._guard(self._volume_command(-1))
        return None

    @property
    def expected_playing(self) -> bool:
        if self.pending_playing is not None:
            return self.pending_playing
        return self.playback.is_playing

    def _volume_command(self, direction: int) -> ChangeVolume:
        if self.pending_volume is not None:
            base: Optional[int] = self.pending_volume
        elif self.playback.device_available:
            base = self.playback.volume_percent
        else:
            base = None
        if base is None:
            return ChangeVolume(direction=direction)
        return ChangeVolume(direction=direction, target=clamp_volume(base + direction * self.volume_step))

    def quit(self) -> Quit:
        self.running = False
        return Quit()

    def switch_view(self, view: View) -> Optional[Command]:
        if view is not View.SEARCH:
            self.search.input_mode = False
        self.active_view = view
        target = self.lists[view]
        if view is not View.SEARCH and not target.loaded and not target.loading:
            target.loading = True
            return LoadView(view=view)
        return None

    def _play_selected(self) -> Optional[Command]:
        selected = self.active_list.selected
        if selected is None:
            return None
        if isinstance(selected, Track):
            return PlayTrack(track=selected)
        uri = getattr(selected, "uri", "")
        if not uri:
            return None
        return PlayContext(uri=uri, label=getattr(selected, "label", uri))

    def _guard(self, command: Optional[Command]) -> Optional[Command]:
        if command is None:
            return None
        if command.playback and not self.playback_enabled:
            self.status_message = PLAYBACK_DISABLED_MESSAGE
            return None

        if isinstance(command, (PlayTrack, PlayContext)):
            self.pending_playing = True
        elif isinstance(command, TogglePlayback):
            self.pending_playing = command.play
        elif isinstance(command, ChangeVolume) and command.target is not None:
            self.pending_volume = command.target
        return command

    # -----------------
    # Results
    # -----------------

    def apply_search_results(self, generation: int, tracks: Sequence[Track]) -> bool:
        """Store results for the current query; returns False for a superseded one."""

        if generation != self.search.generation:
            return False
        self.search.replace(tracks)
        self.status_message = f"{len(self.search.items)} tracks found."
        return True

    def set_view_items(self, view: View, items: Sequence[Any]) -> None:
        self.lists[view].replace(items)

    def finish_loading(self, view: View) -> None:
        self.lists[view].loading = False

    def set_playback(self, status: PlaybackStatus) -> None:
        self.playback = status

    def settle_playback(self) -> None:
        """No playback command is in flight any more; trust the refreshed status again."""

        self.pending_volume = None
        self.pending_playing = None

    def disable_playback(self, message: str) -> None:
        self.playback_enabled = False
        self.status_message = message

    def enable_playback(self) -> None:
        self.playback_enabled = True
