import asyncio
from typing import AsyncIterator, List, Optional

from prompt_toolkit.input import Input, create_input
from prompt_toolkit.key_binding import KeyPress
from prompt_toolkit.keys import Keys

KEY_UP = "up"
KEY_DOWN = "down"
KEY_ENTER = "enter"
KEY_ESCAPE = "escape"
KEY_BACKSPACE = "backspace"
KEY_CLEAR_LINE = "c-u"
KEY_INTERRUPT = "c-c"

ESCAPE_FLUSH_DELAY = 0.05

_SPECIAL_KEYS = {
    Keys.Up: KEY_UP,
    Keys.Down: KEY_DOWN,
    Keys.ControlM: KEY_ENTER,
    Keys.ControlJ: KEY_ENTER,
    Keys.Escape: KEY_ESCAPE,
    Keys.ControlH: KEY_BACKSPACE,
    Keys.ControlU: KEY_CLEAR_LINE,
    Keys.ControlC: KEY_INTERRUPT,
}


def normalize_key(key_press: KeyPress) -> Optional[str]:
    """Map a prompt_toolkit KeyPress to the key names ViewState understands."""

    key = key_press.key
    if key in _SPECIAL_KEYS:
        return _SPECIAL_KEYS[key]
    if isinstance(key, Keys):
        return None
    if len(key) == 1 and key.isprintable():
        return key
    return None


async def read_keys(
    terminal_input: Optional[Input] = None, *, flush_delay: float = ESCAPE_FLUSH_DELAY
) -> AsyncIterator[str]:
    """Yield normalized key names from the terminal in raw mode."""

    inp = terminal_input or create_input()
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[str]" = asyncio.Queue()
    flush_handle: Optional[asyncio.TimerHandle] = None

    def _emit(key_presses: List[KeyPress]) -> None:
        for key_press in key_presses:
            name = normalize_key(key_press)
            if name is not None:
                queue.put_nowait(name)

    def _flush() -> None:
        _emit(inp.flush_keys())

    def _on_input_ready() -> None:
        nonlocal flush_handle
        if flush_handle is not None:
            flush_handle.cancel()
        _emit(inp.read_keys())
        # The parser holds a lone \x1b back until flushed; it may start an escape sequence.
        flush_handle = loop.call_later(flush_delay, _flush)

    try:
        with inp.raw_mode(), inp.attach(_on_input_ready):
            while True:
                yield await queue.get()
    finally:
        if flush_handle is not None:
            flush_handle.cancel()
