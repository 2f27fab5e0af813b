"""A scrollable task list with an optional detail panel."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DETAIL_SHARE_PERCENT = 40
MIN_DETAIL_HEIGHT = 5
NO_SELECTION_TEXT = "  No task selected"


class ItemStatus(str, Enum):
    """Status of a task as shown in the list."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


_ICONS = {
    ItemStatus.DONE: "✅",
    ItemStatus.FAILED: "❌",
    ItemStatus.IN_PROGRESS: "🔄",
    ItemStatus.SKIPPED: "⏭",
}


@dataclass(frozen=True)
class TaskListItem:
    """One row of the task list."""

    id: str
    title: str = ""
    complexity: str = ""
    status: ItemStatus = ItemStatus.PENDING
    editable: bool = False
    detail: str = ""


@dataclass(frozen=True)
class TaskAction:
    """An action requested on a task: edit, delete, new, reorder_up or reorder_down."""

    action: str
    task_id: str = ""


_EDIT_KEYS = {
    "e": "edit",
    "d": "delete",
    "J": "reorder_down",
    "K": "reorder_up",
}


@dataclass
class TaskListModel:
    """Holds task rows, a cursor and a scroll window."""

    items: list[TaskListItem] = field(default_factory=list)
    cursor: int = 0
    scroll_offset: int = 0
    detail_view: bool = False
    width: int = 0
    height: int = 0

    def __post_init__(self) -> None:
        self.items = list(self.items or [])

    def set_items(self, items) -> None:
        """Replace the rows, keeping the cursor within range."""
        self.items = list(items or [])
        if self.cursor >= len(self.items):
            self.cursor = len(self.items) - 1
        if self.cursor < 0:
            self.cursor = 0

    def set_size(self, width: int, height: int) -> None:
        """Change the drawing area."""
        self.width = width
        self.height = height

    def selected_item(self) -> TaskListItem | None:
        """Return the highlighted row, or None if there is none."""
        if not 0 <= self.cursor < len(self.items):
            return None
        return self.items[self.cursor]

    def cursor_id(self) -> str:
        """Return the ID of the highlighted row, or ""."""
        item = self.selected_item()
        return "" if item is None else item.id

    def set_cursor_by_id(self, task_id: str) -> None:
        """Move the cursor to the row with ``task_id``; unknown IDs are ignored."""
        for index, item in enumerate(self.items):
            if item.id == task_id:
                self.cursor = index
                self._ensure_visible()
                return

    def toggle_detail(self) -> None:
        """Show or hide the detail panel."""
        self.detail_view = not self.detail_view

    def _detail_height(self) -> int:
        return max(self.height * DETAIL_SHARE_PERCENT // 100, MIN_DETAIL_HEIGHT)

    def _list_height(self) -> int:
        height = self.height
        if self.detail_view:
            height = self.height - self._detail_height() - 1
        return max(height, 1)

    def _ensure_visible(self) -> None:
        list_height = self._list_height()
        if self.cursor < self.scroll_offset:
            self.scroll_offset = self.cursor
        if self.cursor >= self.scroll_offset + list_height:
            self.scroll_offset = self.cursor - list_height + 1

    def handle_key(self, key: str) -> TaskAction | None:
        """Move the cursor or toggle the panel; return an action if one is requested."""
        if key in ("j", "down"):
            if self.cursor < len(self.items) - 1:
                self.cursor += 1
                self._ensure_visible()
            return None
        if key in ("k", "up"):
            if self.cursor > 0:
                self.cursor -= 1
                self._ensure_visible()
            return None
        if key == "enter":
            self.detail_view = not self.detail_view
            return None
        if key == "n":
            return TaskAction(action="new")
        if key in _EDIT_KEYS:
            item = self.selected_item()
            if item is not None and item.editable:
                return TaskAction(action=_EDIT_KEYS[key], task_id=item.id)
        return None

    def _render_item(self, index: int) -> str:
        item = self.items[index]
        icon = _ICONS.get(item.status, "  ")
        prefix = "→ " if index == self.cursor else "  "
        line = f"{prefix}{icon} {item.id} [{item.complexity}] {item.title}"
        if self.width > 0 and len(line) > self.width:
            line = line[: self.width - 1] + "…"
        return line

    def _render_detail(self, max_height: int) -> str:
        item = self.selected_item()
        if item is None or not item.detail:
            return NO_SELECTION_TEXT
        lines = [f" {line}" for line in item.detail.split("\n")]
        return "\n".join(lines[:max_height])

    def view(self) -> str:
        """Render the visible rows and, when open, the detail panel."""
        if self.width == 0 or self.height == 0 or not self.items:
            return ""

        list_height = self._list_height()
        end = min(self.scroll_offset + list_height, len(self.items))
        list_view = "\n".join(
            self._render_item(i) for i in range(self.scroll_offset, end)
        )
        if not self.detail_view:
            return list_view

        separator = "─" * self.width
        detail = self._render_detail(self._detail_height())
        return "\n".join([list_view, separator, detail])