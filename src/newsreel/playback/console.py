#!/usr/bin/env python3
"""
Console view - error banner and generation log rendered with Rich.
"""

from typing import List

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.text import Text

from newsreel.shared.types.results import LogLevel

from .state import LogEntry, PresentationState

LOG_STYLES = {
    LogLevel.INFO: "white",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "bold red",
}


def render_log_lines(entries: List[LogEntry], max_lines: int = 20) -> Text:
    """Last `max_lines` entries, one per line, styled by level."""
    text = Text()
    visible = entries[-max_lines:] if max_lines else entries
    for line_no, entry in enumerate(visible):
        if line_no:
            text.append("\n")
        text.append(entry.format(), style=LOG_STYLES.get(entry.level, "white"))
    return text


def render_console(state: PresentationState, max_lines: int = 20) -> RenderableType:
    """Error banner (when an error is set) above the generation log pane."""
    parts: List[RenderableType] = []
    if state.error:
        parts.append(Panel(Text(state.error, style="red"), title="An Error Occurred",
                           border_style="red", title_align="left"))

    if state.logs:
        body: RenderableType = render_log_lines(state.logs, max_lines)
    else:
        body = Text("Logs will appear here...", style="dim")

    subtitle = state.loading_message or state.status.value
    parts.append(Panel(body, title="Generation Log", subtitle=subtitle, border_style="cyan", title_align="left"))
    return Group(*parts)
