"""A plain-text progress bar."""

from __future__ import annotations

from dataclasses import dataclass

_LABEL_ROOM = 20
_MIN_BAR_WIDTH = 5


@dataclass
class ProgressBar:
    """Progress of ``done`` out of ``total``, drawn ``width`` columns wide."""

    total: int
    width: int
    done: int = 0

    def view(self) -> str:
        """Render the bar followed by a ``done/total (pct%)`` label."""
        bar_width = max(self.width - _LABEL_ROOM, _MIN_BAR_WIDTH)
        if self.total == 0:
            return f"  {'░' * bar_width} 0/0 (0%)"
        if self.total < 0 or not 0 <= self.done <= self.total:
            raise ValueError(
                f"progress {self.done}/{self.total} is outside the bar's range"
            )

        percent = self.done * 100 // self.total
        filled = self.done * bar_width // self.total
        bar = "█" * filled + "░" * (bar_width - filled)
        return f"  {bar} {self.done}/{self.total} ({percent}%)"