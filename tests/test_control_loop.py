import asyncio
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spotify_api.errors import (
    NoActiveDeviceError,
    RateLimitedError,
    ReauthRequiredError,
    RemoteUnavailableError,
)
from spotify_api.models import Playlist, PlaybackStatus, Track
from spotify_api.session import AuthStatus
from ui.commands import RefreshPlayback, View
from ui.control_loop import (
    NO_DEVICE_MESSAGE,
    REAUTH_MESSAGE,
    UNAUTHENTICATED_MESSAGE,
    ControlLoop,
)
from ui.keys import KEY_CLEAR_LINE, KEY_DOWN, KEY_ENTER
from ui.view_state import PLAYBACK_DISABLED_MESSAGE


def _tracks(prefix, n):
    return [Track(id=f"{prefix}{i}", title=f"{prefix} {i}", artist="Daft Punk", album="Discovery", duration_ms=200000) for i in range(n)]


class FakeClient:
    """Records calls; per-method errors can be queued in `fail`."""

    def __init__(self):
        self.calls = []
        self.fail = {}
        self.results = {}
        self.gates = {}
        self.status = PlaybackStatus(is_playing=True, volume_percent=50, device_available=True, device_name="Desk")

    async def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise self.fail[name]

    async def search(self, query):
        await self._call("search", query)
        gate = self.gates.get(query)
        if gate is not None:
            await gate.wait()
        return self.results.get(query, [])

    async def get_library(self):
        await self._call("get_library")
        return _tracks("lib", 2)

    async def get_playlists(self):
        await self._call("get_playlists")
        return [Playlist(id="p1", name="Mix", uri="spotify:playlist:p1", tracks_total=3)]

    async def get_saved_albums(self):
        await self._call("get_saved_albums")
        return []

    async def get_followed_artists(self):
        await self._call("get_followed_artists")
        return []

    async def get_playback_status(self):
        await self._call("get_playback_status")
        return self.status

    async def play(self, track_id=None, *, context_uri=None):
        await self._call("play", track_id, context_uri)

    async def pause(self):
        await self._call("pause")

    async def next(self):
        await self._call("next")

    async def previous(self):
        await self._call("previous")

    async def set_volume(self, percent):
        await self._call("set_volume", percent)
        return min(100, max(0, percent))


class FakeSession:
    def __init__(self, status):
        self.status = status

    def auth_status(self):
        return self.status


class TestControlLoop(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = FakeClient()
        self.session = FakeSession(AuthStatus(authenticated=True, expires_at=2_000_000_000.0))
        self.renders = []
        self.loop = ControlLoop(
            self.client,
            session=self.session,
            renderer=lambda state: self.renders.append(state.status_message),
        )

    async def press(self, *keys):
        for key in keys:
            await self.loop.dispatch(key)

    def calls_named(self, name):
        return [c for c in self.client.calls if c[0] == name]

    async def test_search_scenario(self):
        self.client.results["daft punk"] = _tracks("t", 4)

        await self.press("/", *"daft punk", KEY_ENTER)

        self.assertEqual(self.calls_named("search"), [("search", "daft punk")])
        self.assertEqual(len(self.loop.state.search.results), 4)
        self.assertEqual(self.loop.state.search.selected_index, 0)
        self.assertFalse(self.loop.state.input_mode)
        self.assertTrue(self.renders)

    async def test_superseded_search_is_dropped(self):
        self.client.results["old"] = _tracks("old", 5)
        self.client.results["new"] = _tracks("new", 2)
        gate = asyncio.Event()
        self.client.gates["old"] = gate

        for key in ["/", *"old", KEY_ENTER, "/", KEY_CLEAR_LINE, *"new", KEY_ENTER]:
            self.loop.submit(key)
        for _ in range(100):
            if self.loop.state.search.loaded:
                break
            await asyncio.sleep(0)
        gate.set()
        await self.loop.drain()

        self.assertEqual([t.id for t in self.loop.state.search.results], ["new0", "new1"])

    async def test_play_selected_track(self):
        self.client.results["daft punk"] = _tracks("t", 3)
        await self.press("/", *"daft punk", KEY_ENTER, KEY_DOWN, KEY_ENTER)

        self.assertIn(("play", "t1", None), self.client.calls)
        self.assertEqual(self.loop.state.playback.device_name, "Desk")

    async def test_no_active_device_is_reported(self):
        self.client.results["x"] = _tracks("t", 1)
        self.client.fail["play"] = NoActiveDeviceError("no device", status=404, reason="NO_ACTIVE_DEVICE")

        await self.press("/", "x", KEY_ENTER, KEY_ENTER)

        self.assertEqual(self.loop.state.status_message, NO_DEVICE_MESSAGE)
        self.assertNotEqual(NO_DEVICE_MESSAGE, UNAUTHENTICATED_MESSAGE)
        self.assertTrue(self.loop.state.playback_enabled)

    async def test_reauth_disables_playback_until_credentials_return(self):
        self.client.fail["next"] = ReauthRequiredError("refresh rejected")

        await self.press("n")
        self.assertFalse(self.loop.state.playback_enabled)
        self.assertEqual(self.loop.state.status_message, REAUTH_MESSAGE)

        await self.press("n")
        self.assertEqual(len(self.calls_named("next")), 1)
        self.assertEqual(self.loop.state.status_message, PLAYBACK_DISABLED_MESSAGE)

        # Still signed out: `u` keeps playback disabled.
        self.session.status = AuthStatus(authenticated=False, reauth_required=True)
        await self.press("u")
        self.assertFalse(self.loop.state.playback_enabled)

        self.session.status = AuthStatus(authenticated=True, expires_at=2_000_000_000.0)
        del self.client.fail["next"]
        await self.press("u", "n")
        self.assertTrue(self.loop.state.playback_enabled)
        self.assertEqual(len(self.calls_named("next")), 2)

    async def test_toggle_pauses_or_resumes(self):
        self.loop.state.set_playback(self.client.status)
        await self.press(" ")
        self.assertEqual(self.calls_named("pause"), [("pause",)])

        self.loop.state.set_playback(PlaybackStatus(is_playing=False, device_available=True))
        self.client.status = PlaybackStatus(is_playing=False, device_available=True)
        await self.press(" ")
        self.assertIn(("play", None, None), self.client.calls)

    async def test_volume_steps_from_current_level(self):
        self.loop.state.set_playback(self.client.status)
        await self.press("+")
        self.assertEqual(self.calls_named("set_volume"), [("set_volume", 60)])
        self.assertEqual(self.loop.state.status_message, "Volume 60%")

    async def test_quick_presses_queue_up(self):
        self.loop.state.set_playback(self.client.status)
        self.loop.submit("+")
        self.loop.submit("+")
        self.loop.submit(" ")
        self.loop.submit(" ")
        await self.loop.drain()

        self.assertEqual(self.calls_named("set_volume"), [("set_volume", 60), ("set_volume", 70)])
        self.assertEqual([c[0] for c in self.client.calls if c[0] in ("pause", "play")], ["pause", "play"])
        self.assertIsNone(self.loop.state.pending_volume)
        self.assertIsNone(self.loop.state.pending_playing)

        # Back to the refreshed status once nothing is in flight.
        await self.press("+")
        self.assertEqual(self.calls_named("set_volume")[-1], ("set_volume", 60))

    async def test_volume_without_device(self):
        self.client.status = PlaybackStatus()
        await self.press("-")
        self.assertEqual(self.calls_named("set_volume"), [])
        self.assertEqual(self.loop.state.status_message, NO_DEVICE_MESSAGE)

    async def test_view_switch_loads_items(self):
        await self.press("3")
        self.assertEqual(self.calls_named("get_playlists"), [("get_playlists",)])
        self.assertEqual(len(self.loop.state.lists[View.PLAYLISTS].items), 1)

        await self.press("1", "3")
        self.assertEqual(len(self.calls_named("get_playlists")), 1)

        await self.press(KEY_ENTER)
        self.assertIn(("play", None, "spotify:playlist:p1"), self.client.calls)

    async def test_view_load_is_not_repeated_while_pending(self):
        for key in ["3", "1", "3", "1", "3"]:
            self.loop.submit(key)
        await self.loop.drain()
        self.assertEqual(len(self.calls_named("get_playlists")), 1)

    async def test_failed_view_load_is_retried(self):
        self.client.fail["get_library"] = RemoteUnavailableError("timeout")
        await self.press("2")
        self.assertFalse(self.loop.state.lists[View.LIBRARY].loaded)

        del self.client.fail["get_library"]
        await self.press("1", "2")
        self.assertEqual(len(self.calls_named("get_library")), 2)
        self.assertEqual(len(self.loop.state.lists[View.LIBRARY].items), 2)

    async def test_errors_become_status_messages(self):
        self.client.fail["get_library"] = RateLimitedError("slow down", status=429, retry_after=5)
        await self.press("2")
        self.assertIn("5s", self.loop.state.status_message)

        self.client.fail["get_playback_status"] = RemoteUnavailableError("timeout")
        await self.loop.run_command(RefreshPlayback())
        self.assertIn("did not respond", self.loop.state.status_message)

    async def test_quit_stops_run(self):
        self.assertFalse(await self.loop.dispatch("q"))

        async def keys():
            for key in ["2", "q", "n"]:
                yield key

        loop = ControlLoop(self.client, session=self.session)
        self.assertEqual(await loop.run(keys()), 0)
        self.assertEqual(self.calls_named("next"), [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
