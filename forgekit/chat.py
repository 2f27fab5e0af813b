"""A chat panel: message history, streaming replies and slash commands."""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable

INPUT_AREA_HEIGHT = 3
MESSAGE_PADDING = 2
MIN_CONTENT_WIDTH = 10
PLACEHOLDER = "Type a message... (/ for commands)"
THINKING_TEXT = "Claude is thinking..."
STREAM_CURSOR = "▊"
SPINNER_FRAMES = ("⣾ ", "⣽ ", "⣻ ", "⢿ ", "⡿ ", "⣟ ", "⣯ ", "⣷ ")


class Role(str, Enum):
    """Who sent a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Message:
    """A single chat message."""

    role: Role
    content: str
    time: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SlashCommand:
    """A parsed ``/name args`` command."""

    name: str
    args: str = ""


def parse_slash_command(text: str) -> SlashCommand | None:
    """Parse ``text`` as a slash command, or return None if it is not one."""
    if not text.startswith("/"):
        return None
    body = text[1:]
    if not body:
        return None
    name, _, args = body.partition(" ")
    return SlashCommand(name=name, args=args.strip())


def _format_time(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "PM" if value.hour >= 12 else "AM"
    return f"{hour}:{value.minute:02d} {suffix}"


def _word_wrap(text: str, width: int) -> list[str]:
    width = max(width, 1)
    lines: list[str] = []
    for paragraph in text.split("\n"):
        wrapped = textwrap.wrap(
            paragraph,
            width,
            break_long_words=False,
            break_on_hyphens=False,
        )
        lines.extend(wrapped or [""])
    return lines


Sender = Callable[[str], Any]
SlashHandler = Callable[[SlashCommand], "tuple[Any, bool]"]


class ChatModel:
    """Chat history with an input line, a thinking spinner and streaming support.

    ``sender`` is called with the user's text and returns an action for the
    caller to run; ``slash_handler`` receives parsed slash commands and returns
    ``(action, handled)``.
    """

    def __init__(
        self,
        sender: Sender,
        slash_handler: SlashHandler | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.sender = sender
        self.slash_handler = slash_handler
        self.clock = clock
        self.input_text = ""
        self.focused = True
        self.streaming = False
        self.width = 0
        self.height = 0
        self.viewport_height = 0
        self.ready = False
        self._messages: list[Message] = []
        self._waiting = False
        self._stream_index: int | None = None
        self._frame = 0

    def _add(self, role: Role, content: str) -> None:
        self._messages.append(Message(role=role, content=content, time=self.clock()))

    def add_message(self, role: Role, content: str) -> None:
        """Add a message from outside the chat."""
        self._add(Role(role), content)

    def messages(self) -> list[Message]:
        """Return copies of all messages."""
        return [replace(m) for m in self._messages]

    def is_waiting(self) -> bool:
        """Return True while a reply is awaited."""
        return self._waiting

    def set_size(self, width: int, height: int) -> None:
        """Resize the panel; the message area leaves room for the input box."""
        self.width = width
        self.height = height
        self.viewport_height = max(height - INPUT_AREA_HEIGHT, 0)
        self.ready = True

    def receive_response(self, content: str) -> None:
        """Add an assistant reply and stop waiting."""
        self._waiting = False
        self._add(Role.ASSISTANT, content)

    def handle_response(self, content: str, error: BaseException | None = None) -> None:
        """Record a complete reply, or the error that replaced it."""
        self._waiting = False
        if error is not None:
            self._add(Role.SYSTEM, f"Error: {error}")
        else:
            self._add(Role.ASSISTANT, content)

    def clear_messages(self) -> None:
        """Remove every message and end any stream."""
        self._messages = []
        self.streaming = False
        self._stream_index = None

    def start_stream(self) -> None:
        """Begin a streamed assistant reply with an empty message."""
        self.streaming = True
        self._waiting = True
        self._add(Role.ASSISTANT, "")
        self._stream_index = len(self._messages) - 1

    def _streamed_message(self) -> Message | None:
        index = self._stream_index
        if index is None or not 0 <= index < len(self._messages):
            return None
        return self._messages[index]

    def append_chunk(self, chunk: str) -> None:
        """Append streamed text to the reply being received."""
        if not self.streaming:
            return
        message = self._streamed_message()
        if message is not None:
            message.content += chunk

    def finish_stream(self, full_text: str = "", error: BaseException | None = None) -> None:
        """End the stream; an error replaces an empty reply or follows a partial one."""
        self.streaming = False
        self._waiting = False
        if error is not None:
            message = self._streamed_message()
            if message is not None:
                if message.content == "":
                    message.role = Role.SYSTEM
                    message.content = f"Error: {error}"
                else:
                    self._add(Role.SYSTEM, f"Error: {error}")
        self.focused = True

    def tick(self) -> bool:
        """Advance the spinner while waiting; return whether it keeps spinning."""
        if not self._waiting:
            return False
        self._frame = (self._frame + 1) % len(SPINNER_FRAMES)
        return True

    def submit(self) -> Any:
        """Send the input line as a message or slash command.

        Returns the action produced by the sender or slash handler, or None.
        """
        if self._waiting:
            return None
        text = self.input_text.strip()
        if not text:
            return None
        self.input_text = ""

        command = parse_slash_command(text)
        if command is not None:
            if self.slash_handler is not None:
                action, handled = self.slash_handler(command)
                if handled:
                    if action is not None:
                        self._waiting = True
                    return action
            self._add(Role.SYSTEM, f"Unknown command: /{command.name}")
            return None

        self._add(Role.USER, text)
        self._waiting = True
        return self.sender(text)

    def _spinner_text(self) -> str:
        return f"{SPINNER_FRAMES[self._frame]} {THINKING_TEXT}"

    def _render_message(self, message: Message, width: int) -> str:
        wrapped = _word_wrap(message.content, width - 4)
        stamp = _format_time(message.time)
        if message.role == Role.USER:
            body = "\n".join(f"┃ {line}" for line in wrapped)
            return f"You {stamp}\n{body}"
        if message.role == Role.ASSISTANT:
            body = "\n".join(f"┃ {line}" for line in wrapped)
            return f"Claude {stamp}\n{body}"
        wrapped[0] = f"i {wrapped[0]}"
        return "\n".join(f"  {line}" for line in wrapped)

    def render_messages(self) -> str:
        """Render the whole conversation as text."""
        if not self._messages and not self._waiting:
            return ""
        width = max(self.width - MESSAGE_PADDING * 2, MIN_CONTENT_WIDTH)

        parts = []
        for index, message in enumerate(self._messages):
            rendered = self._render_message(message, width)
            if self.streaming and index == self._stream_index:
                rendered += STREAM_CURSOR
            parts.append(rendered)
        text = "\n".join(parts)

        if self._waiting and not self.streaming:
            if self._messages:
                text += "\n\n"
            text += f"  {self._spinner_text()}"
        return text

    def _input_box(self) -> str:
        inner = max(self.width - 6, 1)
        if self._waiting:
            content = self._spinner_text()
        else:
            content = self.input_text or PLACEHOLDER
        content = content[-inner:] if len(content) > inner else content
        horizontal = "─" * (inner + 2)
        return "\n".join(
            [f"╭{horizontal}╮", f"│ {content.ljust(inner)} │", f"╰{horizontal}╯"]
        )

    def view(self) -> str:
        """Render the newest messages above the input box."""
        if self.width == 0:
            return ""
        lines = self.render_messages().split("\n") if self.render_messages() else []
        visible = lines[-self.viewport_height:] if self.viewport_height > 0 else []
        visible.extend([""] * (self.viewport_height - len(visible)))
        return "\n".join([*visible, self._input_box()])