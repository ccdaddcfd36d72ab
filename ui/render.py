from typing import List, Optional

from prompt_toolkit.output import Output, create_output

from ui.commands import VIEW_KEYS, View
from ui.view_state import ViewState

HELP_LINE = "1-5 views | / search | ↑↓ move | Enter play | Space play/pause | n/p next/prev | +/- volume | u auth | q quit"
INPUT_HELP_LINE = "Typing: Enter search | Esc stop typing | Ctrl-U clear | Ctrl-C quit"
MAX_ROWS = 20


def render_lines(state: ViewState) -> List[str]:
    """Plain-text screen for the current state."""

    tabs = []
    for key, view in VIEW_KEYS.items():
        marker = f"[{key} {view.value}]" if view is state.active_view else f" {key} {view.value} "
        tabs.append(marker)
    lines = [" ".join(tabs), ""]

    if state.active_view is View.SEARCH:
        cursor = "_" if state.search.input_mode else ""
        mode = "typing" if state.search.input_mode else "press / to type"
        lines.append(f"Search ({mode}): {state.search.query_buffer}{cursor}")
        lines.append("")

    current = state.active_list
    if not current.items:
        lines.append("  (nothing here yet)" if current.loaded or state.active_view is View.SEARCH else "  Loading...")
    else:
        # Keep the selected row on screen.
        start = max(0, current.selected_index - MAX_ROWS + 1)
        for index in range(start, min(len(current.items), start + MAX_ROWS)):
            item = current.items[index]
            pointer = ">" if index == current.selected_index else " "
            duration = f"  [{item.duration}]" if hasattr(item, "duration") else ""
            lines.append(f"{pointer} {getattr(item, 'label', item)}{duration}")

    lines.append("")
    lines.append(_playback_line(state))
    if state.status_message:
        lines.append(state.status_message)
    # q is text while typing, so the typing keys are shown instead.
    lines.append(INPUT_HELP_LINE if state.input_mode else HELP_LINE)
    return lines


def _playback_line(state: ViewState) -> str:
    if not state.playback_enabled:
        return "Playback: disabled (re-authentication required)"
    status = state.playback
    if not status.device_available:
        return "Playback: no active device"
    icon = "⏸" if status.is_playing else "▶"
    track = status.current_track.label if status.current_track else "(nothing playing)"
    return f"{icon} {track} | {status.device_name} | Volume: {status.volume_percent}%"


class TerminalRenderer:
    """Redraws the whole screen on every call."""

    def __init__(self, output: Optional[Output] = None):
        self.output = output or create_output()

    def __call__(self, state: ViewState) -> None:
        lines = render_lines(state)
        self.output.erase_screen()
        self.output.cursor_goto(0, 0)
        # Raw mode: no implicit carriage return.
        self.output.write("\r\n".join(lines))
        self.output.flush()
