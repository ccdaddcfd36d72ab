import asyncio
import logging
import time
from typing import AsyncIterable, Awaitable, Callable, Dict, Optional, Set, Type

from spotify_api.errors import (
    MalformedResponseError,
    NoActiveDeviceError,
    NotFoundError,
    PremiumRequiredError,
    RateLimitedError,
    ReauthRequiredError,
    RemoteUnavailableError,
    SpotifyError,
    TokenStoreError,
    UnauthenticatedError,
)
from ui.commands import (
    ChangeVolume,
    Command,
    LoadView,
    NextTrack,
    PlayContext,
    PlayTrack,
    PreviousTrack,
    Quit,
    RefreshPlayback,
    Search,
    ShowAuthStatus,
    TogglePlayback,
    View,
)
from ui.view_state import DEFAULT_VOLUME_STEP, ViewState, clamp_volume

logger = logging.getLogger(__name__)

NO_DEVICE_MESSAGE = "No active Spotify device. Start playback on a phone, desktop app or speaker, then try again."
PREMIUM_MESSAGE = "Spotify refused the playback command: a Premium account and an active device are required."
REAUTH_MESSAGE = "Spotify session expired. Playback controls disabled; quit (q) and choose 'Authenticate with Spotify'."
UNAUTHENTICATED_MESSAGE = "Not signed in to Spotify. Quit (q) and choose 'Authenticate with Spotify'."

Renderer = Callable[[ViewState], None]


class ControlLoop:
    """Drives ViewState from key presses and runs the resulting commands.

    Transitions happen synchronously in submit(); network work runs as tasks
    on the same event loop so the next key is handled while a call is pending.
    """

    def __init__(
        self,
        client,
        state: Optional[ViewState] = None,
        *,
        session=None,
        renderer: Optional[Renderer] = None,
        volume_step: int = DEFAULT_VOLUME_STEP,
    ):
        self.client = client
        self.session = session if session is not None else getattr(client, "session", None)
        self.state = state or ViewState(volume_step=volume_step)
        self.renderer = renderer

        self._tasks: Set[asyncio.Task] = set()
        self._playback_in_flight = 0
        self._handlers: Dict[Type[Command], Callable[[Command], Awaitable[None]]] = {
            Search: self._search,
            LoadView: self._load_view,
            ShowAuthStatus: self._show_auth_status,
            PlayTrack: self._play_track,
            PlayContext: self._play_context,
            TogglePlayback: self._toggle_playback,
            NextTrack: self._next_track,
            PreviousTrack: self._previous_track,
            ChangeVolume: self._change_volume,
            RefreshPlayback: self._refresh_playback_status,
        }

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def render(self) -> None:
        if self.renderer is not None:
            self.renderer(self.state)

    # -----------------
    # Loop
    # -----------------

    def submit(self, key: str) -> bool:
        """Apply one key; returns False once the user asked to quit."""

        command = self.state.handle_key(key)
        if isinstance(command, Quit):
            logger.info("Quit requested")
            return False

        if command is not None:
            task = asyncio.get_running_loop().create_task(self.run_command(command))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            if command.playback:
                self._playback_in_flight += 1
                task.add_done_callback(self._playback_done)

        self.render()
        return True

    def _playback_done(self, task: asyncio.Task) -> None:
        self._playback_in_flight -= 1
        if not self._playback_in_flight:
            self.state.settle_playback()

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def dispatch(self, key: str) -> bool:
        keep_running = self.submit(key)
        await self.drain()
        return keep_running

    async def run(self, keys: AsyncIterable[str]) -> int:
        self.render()
        try:
            async for key in keys:
                if not self.submit(key):
                    break
        finally:
            await self.cancel_pending()
        return 0

    async def cancel_pending(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def execute(self, command: Command) -> None:
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValueError(f"No handler for {command!r}")
        await handler(command)

    async def run_command(self, command: Command) -> None:
        try:
            await self.execute(command)
        except ReauthRequiredError as e:
            logger.warning("Re-authentication required: %s", e)
            self.state.disable_playback(REAUTH_MESSAGE)
        except UnauthenticatedError as e:
            logger.warning("Not authenticated: %s", e)
            self.state.status_message = UNAUTHENTICATED_MESSAGE
        except NoActiveDeviceError as e:
            logger.info("No active device: %s", e)
            self.state.status_message = NO_DEVICE_MESSAGE
        except PremiumRequiredError as e:
            logger.info("Premium required: %s", e)
            self.state.status_message = PREMIUM_MESSAGE
        except RateLimitedError as e:
            wait = f"{int(e.retry_after)}s" if e.retry_after else "a few seconds"
            logger.info("Rate limited, retry after %s", wait)
            self.state.status_message = f"Spotify is rate limiting requests; try again in {wait}."
        except NotFoundError as e:
            self.state.status_message = f"Not found: {e}"
        except RemoteUnavailableError as e:
            logger.warning("Spotify unavailable: %s", e)
            self.state.status_message = "Spotify did not respond; check your connection and try again."
        except MalformedResponseError as e:
            logger.error("Unexpected Spotify response: %s", e)
            self.state.status_message = "Spotify sent an unexpected response."
        except TokenStoreError as e:
            logger.error("Token cache error: %s", e)
            self.state.status_message = f"Could not save Spotify credentials: {e}"
        except SpotifyError as e:
            logger.error("Spotify error: %s", e)
            self.state.status_message = str(e)
        except Exception:
            logger.exception("Command %r failed", command)
            self.state.status_message = "Unexpected error; see the log file for details."
        finally:
            self.render()

    # -----------------
    # Command handlers
    # -----------------

    async def _search(self, command: Search) -> None:
        tracks = await self.client.search(command.query)
        if not self.state.apply_search_results(command.generation, tracks):
            logger.debug("Discarding results for superseded query %r", command.query)

    async def _load_view(self, command: LoadView) -> None:
        loaders = {
            View.LIBRARY: self.client.get_library,
            View.PLAYLISTS: self.client.get_playlists,
            View.ALBUMS: self.client.get_saved_albums,
            View.ARTISTS: self.client.get_followed_artists,
        }
        try:
            items = await loaders[command.view]()
        finally:
            # A failed or cancelled load is retried on the next switch to the view.
            self.state.finish_loading(command.view)
        self.state.set_view_items(command.view, items)
        if self.state.active_view is command.view:
            self.state.status_message = f"{command.view.value}: {len(items)} items."

    async def _show_auth_status(self, command: ShowAuthStatus) -> None:
        if self.session is None:
            self.state.status_message = "Authentication status unavailable."
            return

        status = self.session.auth_status()
        if not status.authenticated:
            self.state.status_message = REAUTH_MESSAGE if status.reauth_required else UNAUTHENTICATED_MESSAGE
            return

        if not self.state.playback_enabled:
            self.state.enable_playback()
            logger.info("Credentials present again; playback controls enabled")

        expires = time.strftime("%H:%M:%S", time.localtime(float(status.expires_at)))
        if status.expired:
            self.state.status_message = f"Signed in. Access token expired at {expires}; it refreshes on the next request."
        else:
            self.state.status_message = f"Signed in. Access token valid until {expires}."

    async def _play_track(self, command: PlayTrack) -> None:
        await self.client.play(command.track.id)
        self.state.status_message = f"Playing {command.track.label}"
        await self._refresh_playback()

    async def _play_context(self, command: PlayContext) -> None:
        await self.client.play(context_uri=command.uri)
        self.state.status_message = f"Playing {command.label}"
        await self._refresh_playback()

    async def _toggle_playback(self, command: TogglePlayback) -> None:
        if command.play:
            await self.client.play()
            self.state.status_message = "Resumed."
        else:
            await self.client.pause()
            self.state.status_message = "Paused."
        await self._refresh_playback()

    async def _next_track(self, command: NextTrack) -> None:
        await self.client.next()
        self.state.status_message = "Skipped to next track."
        await self._refresh_playback()

    async def _previous_track(self, command: PreviousTrack) -> None:
        await self.client.previous()
        self.state.status_message = "Back to previous track."
        await self._refresh_playback()

    async def _change_volume(self, command: ChangeVolume) -> None:
        target = command.target
        if target is None:
            current = await self.client.get_playback_status()
            self.state.set_playback(current)
            if not current.device_available:
                raise NoActiveDeviceError("No device reported by /me/player")
            target = clamp_volume(current.volume_percent + command.direction * self.state.volume_step)

        volume = await self.client.set_volume(target)
        self.state.status_message = f"Volume {volume}%"
        await self._refresh_playback()

    async def _refresh_playback(self) -> None:
        self.state.set_playback(await self.client.get_playback_status())

    async def _refresh_playback_status(self, command: RefreshPlayback) -> None:
        await self._refresh_playback()
