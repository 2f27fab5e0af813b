"""A scrolling, following log viewer for task output."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

WAITING_TEXT = "  Waiting for events..."


class LogLineType(IntEnum):
    """Purpose or severity of a log line."""

    INFO = 0
    SUCCESS = 1
    ERROR = 2
    WARNING = 3
    CLAUDE_CHUNK = 4


@dataclass
class LogLine:
    """A single line in a task's live log."""

    text: str
    type: LogLineType = LogLineType.INFO


@dataclass
class LogStream:
    """Holds log lines and a scroll window that follows the newest line."""

    lines: list[LogLine] = field(default_factory=list)
    offset: int = 0
    width: int = 0
    height: int = 0
    follow: bool = True

    def set_size(self, width: int, height: int) -> None:
        """Change the viewing area."""
        self.width = width
        self.height = height

    def append_line(self, line: LogLine) -> None:
        """Add a line, scrolling to it when following."""
        self.lines.append(line)
        if self.follow:
            self.scroll_to_bottom()

    def set_lines(self, lines) -> None:
        """Replace every line and resume following."""
        self.lines = list(lines)
        self.follow = True
        self.scroll_to_bottom()

    def clear(self) -> None:
        """Drop all lines and reset the scroll position."""
        self.lines = []
        self.offset = 0

    def scroll_to_bottom(self) -> None:
        """Move the window so the last line is visible."""
        if self.height > 0 and len(self.lines) > self.height:
            self.offset = len(self.lines) - self.height
        else:
            self.offset = 0

    def handle_key(self, key: str) -> None:
        """React to ``G`` (bottom, follow) and ``g`` (top, stop following)."""
        if key == "G":
            self.follow = True
            self.scroll_to_bottom()
        elif key == "g":
            self.follow = False
            self.offset = 0

    def _render_line(self, line: LogLine) -> str:
        prefix = "    " if line.type == LogLineType.CLAUDE_CHUNK else "  > "
        text = line.text.split("\n", 1)[0]
        max_width = self.width - len(prefix) - 1
        if max_width > 0 and len(text) > max_width:
            text = text[: max_width - 1] + "…"
        return prefix + text

    def view(self) -> str:
        """Render the visible window, padded to the full height."""
        if self.height <= 0 or self.width <= 0:
            return ""
        if not self.lines:
            return WAITING_TEXT

        start = max(self.offset, 0)
        visible = [self._render_line(l) for l in self.lines[start:self.offset + self.height]]
        visible.extend([""] * (self.height - len(visible)))
        return "\n".join(visible)