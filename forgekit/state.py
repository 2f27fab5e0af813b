"""Persistent project state kept in ``.forge/state.json``."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from forgekit.git import detect_base_branch

FORGE_DIR_NAME = ".forge"
STATE_FILE_NAME = "state.json"
LOGS_DIR_NAME = "logs"

CONVERSATION_LIMIT = 50
CONVERSATION_KEEP = 30

_TASK_NUMBER = re.compile(r"[+-]?[0-9]+")
_FRACTION = re.compile(r"\.(\d+)")


class StateError(Exception):
    """Raised when state cannot be read, written or changed as requested."""


class Phase(str, Enum):
    """Workflow phase of a project."""

    PLANNING = "planning"
    REVIEW = "review"
    INPUTS = "inputs"
    EXECUTION = "execution"
    DONE = "done"


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


_BLOCKING = frozenset({TaskStatus.FAILED, TaskStatus.CANCELLED, TaskStatus.SKIPPED})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def _parse_time(value: Any) -> datetime | None:
    if value is None:
        return None
    text = str(value)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
    return datetime.fromisoformat(text)


@dataclass
class PlanRevision:
    """Metadata recorded each time the plan changes."""

    version: int
    summary: str
    timestamp: datetime | None = None


@dataclass
class ConversationMsg:
    """One message of the planning conversation."""

    role: str
    content: str


@dataclass
class Task:
    """A unit of planned work."""

    id: str
    title: str = ""
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)
    complexity: str = ""
    status: TaskStatus = TaskStatus.PENDING
    plan_version_created: int = 0
    plan_version_modified: int = 0
    branch: str = ""
    git_sha: str = ""
    cancelled_reason: str = ""
    retries: int = 0
    completed_at: datetime | None = None


@dataclass
class MaxTurnsConfig:
    """Maximum assistant turns per task complexity."""

    small: int = 0
    medium: int = 0
    large: int = 0


@dataclass
class MCPServerConfig:
    """A configured MCP server."""

    name: str
    command: str
    args: list[str] = field(default_factory=list)


@dataclass
class Settings:
    """Execution settings for a project."""

    test_command: str = ""
    build_command: str = ""
    branch_pattern: str = ""
    base_branch: str = ""
    max_retries: int = 0
    auto_pr: bool = False
    claude_model: str = ""
    max_turns: MaxTurnsConfig = field(default_factory=MaxTurnsConfig)
    mcp_servers: list[MCPServerConfig] = field(default_factory=list)
    env_vars: dict[str, str] = field(default_factory=dict)
    extra_context: str = ""
    provider: dict[str, Any] = field(default_factory=dict)
    git_initialized: bool = False
    remote_url: str = ""


@dataclass
class ProjectSnapshot:
    """Detected project context for the planning phase."""

    is_existing: bool = False
    language: str = ""
    frameworks: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    file_count: int = 0
    loc: int = 0
    structure: str = ""
    readme_content: str = ""
    claude_md: str = ""
    git_branch: str = ""
    git_dirty: bool = False
    recent_commits: list[str] = field(default_factory=list)
    key_files: list[str] = field(default_factory=list)


def _put(out: dict[str, Any], key: str, value: Any) -> None:
    """Store ``value`` only when it is not empty."""
    if value:
        out[key] = value


def _task_to_dict(task: Task) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "acceptance_criteria": list(task.acceptance_criteria),
    }
    _put(out, "depends_on", list(task.depends_on))
    out["complexity"] = task.complexity
    out["status"] = task.status.value
    out["plan_version_created"] = task.plan_version_created
    out["plan_version_modified"] = task.plan_version_modified
    _put(out, "branch", task.branch)
    _put(out, "git_sha", task.git_sha)
    _put(out, "cancelled_reason", task.cancelled_reason)
    out["retries"] = task.retries
    _put(out, "completed_at", _format_time(task.completed_at))
    return out


def _task_from_dict(data: Mapping[str, Any]) -> Task:
    return Task(
        id=data.get("id", ""),
        title=data.get("title", ""),
        description=data.get("description", ""),
        acceptance_criteria=list(data.get("acceptance_criteria") or []),
        depends_on=list(data.get("depends_on") or []),
        complexity=data.get("complexity", ""),
        status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
        plan_version_created=int(data.get("plan_version_created", 0)),
        plan_version_modified=int(data.get("plan_version_modified", 0)),
        branch=data.get("branch", ""),
        git_sha=data.get("git_sha", ""),
        cancelled_reason=data.get("cancelled_reason", ""),
        retries=int(data.get("retries", 0)),
        completed_at=_parse_time(data.get("completed_at")),
    )


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    out: dict[str, Any] = {}
    _put(out, "test_command", settings.test_command)
    _put(out, "build_command", settings.build_command)
    out["branch_pattern"] = settings.branch_pattern
    out["base_branch"] = settings.base_branch
    out["max_retries"] = settings.max_retries
    out["auto_pr"] = settings.auto_pr
    _put(out, "claude_model", settings.claude_model)
    out["max_turns"] = {
        "small": settings.max_turns.small,
        "medium": settings.max_turns.medium,
        "large": settings.max_turns.large,
    }
    _put(
        out,
        "mcp_servers",
        [
            {"name": s.name, "command": s.command, "args": list(s.args)}
            for s in settings.mcp_servers
        ],
    )
    _put(out, "env_vars", dict(settings.env_vars))
    _put(out, "extra_context", settings.extra_context)
    out["provider"] = dict(settings.provider)
    _put(out, "git_initialized", settings.git_initialized)
    _put(out, "remote_url", settings.remote_url)
    return out


def _settings_from_dict(data: Mapping[str, Any]) -> Settings:
    turns = data.get("max_turns") or {}
    return Settings(
        test_command=data.get("test_command", ""),
        build_command=data.get("build_command", ""),
        branch_pattern=data.get("branch_pattern", ""),
        base_branch=data.get("base_branch", ""),
        max_retries=int(data.get("max_retries", 0)),
        auto_pr=bool(data.get("auto_pr", False)),
        claude_model=data.get("claude_model", ""),
        max_turns=MaxTurnsConfig(
            small=int(turns.get("small", 0)),
            medium=int(turns.get("medium", 0)),
            large=int(turns.get("large", 0)),
        ),
        mcp_servers=[
            MCPServerConfig(
                name=s.get("name", ""),
                command=s.get("command", ""),
                args=list(s.get("args") or []),
            )
            for s in data.get("mcp_servers") or []
        ],
        env_vars=dict(data.get("env_vars") or {}),
        extra_context=data.get("extra_context", ""),
        provider=dict(data.get("provider") or {}),
        git_initialized=bool(data.get("git_initialized", False)),
        remote_url=data.get("remote_url", ""),
    )


def _snapshot_to_dict(snap: ProjectSnapshot) -> dict[str, Any]:
    out: dict[str, Any] = {"is_existing": snap.is_existing}
    _put(out, "language", snap.language)
    _put(out, "frameworks", list(snap.frameworks))
    _put(out, "dependencies", list(snap.dependencies))
    out["file_count"] = snap.file_count
    out["loc_estimate"] = snap.loc
    out["structure"] = snap.structure
    _put(out, "readme", snap.readme_content)
    _put(out, "claude_md", snap.claude_md)
    _put(out, "git_branch", snap.git_branch)
    out["git_dirty"] = snap.git_dirty
    _put(out, "recent_commits", list(snap.recent_commits))
    _put(out, "key_files", list(snap.key_files))
    return out


def _snapshot_from_dict(data: Mapping[str, Any]) -> ProjectSnapshot:
    return ProjectSnapshot(
        is_existing=bool(data.get("is_existing", False)),
        language=data.get("language", ""),
        frameworks=list(data.get("frameworks") or []),
        dependencies=list(data.get("dependencies") or []),
        file_count=int(data.get("file_count", 0)),
        loc=int(data.get("loc_estimate", 0)),
        structure=data.get("structure", ""),
        readme_content=data.get("readme", ""),
        claude_md=data.get("claude_md", ""),
        git_branch=data.get("git_branch", ""),
        git_dirty=bool(data.get("git_dirty", False)),
        recent_commits=list(data.get("recent_commits") or []),
        key_files=list(data.get("key_files") or []),
    )


@dataclass
class State:
    """Everything forge remembers about a project between runs."""

    project_name: str = ""
    phase: Phase = Phase.PLANNING
    plan_version: int = 0
    plan_history: list[PlanRevision] = field(default_factory=list)
    conversation_history: list[ConversationMsg] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    settings: Settings | None = None
    snapshot: ProjectSnapshot | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form of the state."""
        out: dict[str, Any] = {}
        _put(out, "project_name", self.project_name)
        out["phase"] = self.phase.value
        out["plan_version"] = self.plan_version
        _put(
            out,
            "plan_history",
            [
                {
                    "version": r.version,
                    "summary": r.summary,
                    "timestamp": _format_time(r.timestamp),
                }
                for r in self.plan_history
            ],
        )
        _put(
            out,
            "conversation_history",
            [{"role": m.role, "content": m.content} for m in self.conversation_history],
        )
        _put(out, "tasks", [_task_to_dict(t) for t in self.tasks])
        if self.settings is not None:
            out["settings"] = _settings_to_dict(self.settings)
        if self.snapshot is not None:
            out["snapshot"] = _snapshot_to_dict(self.snapshot)
        out["created_at"] = _format_time(self.created_at)
        out["updated_at"] = _format_time(self.updated_at)
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> State:
        """Build a state from its JSON-ready form."""
        settings = data.get("settings")
        snapshot = data.get("snapshot")
        return cls(
            project_name=data.get("project_name", ""),
            phase=Phase(data.get("phase", Phase.PLANNING.value)),
            plan_version=int(data.get("plan_version", 0)),
            plan_history=[
                PlanRevision(
                    version=int(r.get("version", 0)),
                    summary=r.get("summary", ""),
                    timestamp=_parse_time(r.get("timestamp")),
                )
                for r in data.get("plan_history") or []
            ],
            conversation_history=[
                ConversationMsg(role=m.get("role", ""), content=m.get("content", ""))
                for m in data.get("conversation_history") or []
            ],
            tasks=[_task_from_dict(t) for t in data.get("tasks") or []],
            settings=None if settings is None else _settings_from_dict(settings),
            snapshot=None if snapshot is None else _snapshot_from_dict(snapshot),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )

    def next_task_id(self) -> str:
        """Return the ID following the highest numbered existing task."""
        highest = 0
        for task in self.tasks:
            parts = task.id.split("-", 1)
            if len(parts) == 2 and _TASK_NUMBER.fullmatch(parts[1]):
                highest = max(highest, int(parts[1]))
        return f"task-{highest + 1:03d}"

    def add_task(self, title, description, complexity, criteria, depends_on) -> Task:
        """Append a pending task stamped with the current plan version."""
        task = Task(
            id=self.next_task_id(),
            title=title,
            description=description,
            complexity=complexity,
            acceptance_criteria=list(criteria or []),
            depends_on=list(depends_on or []),
            status=TaskStatus.PENDING,
            plan_version_created=self.plan_version,
            plan_version_modified=self.plan_version,
        )
        self.tasks.append(task)
        return task

    def _with_status(self, status: TaskStatus) -> list[Task]:
        return [t for t in self.tasks if t.status == status]

    def pending_tasks(self) -> list[Task]:
        """Tasks waiting to run, in order."""
        return self._with_status(TaskStatus.PENDING)

    def completed_tasks(self) -> list[Task]:
        """Tasks that are done, in order."""
        return self._with_status(TaskStatus.DONE)

    def failed_tasks(self) -> list[Task]:
        """Tasks that failed, in order."""
        return self._with_status(TaskStatus.FAILED)

    def active_tasks(self) -> list[Task]:
        """Tasks that are neither cancelled nor skipped."""
        return [
            t
            for t in self.tasks
            if t.status not in (TaskStatus.CANCELLED, TaskStatus.SKIPPED)
        ]

    def find_task(self, task_id: str) -> Task | None:
        """Return the task with ``task_id`` itself, or None."""
        return next((t for t in self.tasks if t.id == task_id), None)

    def cancel_task(self, task_id: str, reason: str) -> None:
        """Cancel a task that is not done, running or already cancelled."""
        task = self.find_task(task_id)
        if task is None:
            raise StateError(f'task "{task_id}" not found')
        if task.status == TaskStatus.DONE:
            raise StateError(f'cannot cancel task "{task_id}": already done')
        if task.status == TaskStatus.IN_PROGRESS:
            raise StateError(f'cannot cancel task "{task_id}": currently in progress')
        if task.status == TaskStatus.CANCELLED:
            raise StateError(f'cannot cancel task "{task_id}": already cancelled')
        task.status = TaskStatus.CANCELLED
        task.cancelled_reason = reason

    def bump_plan_version(self, summary: str) -> int:
        """Increment the plan version, record a revision and return the new version."""
        self.plan_version += 1
        self.plan_history.append(
            PlanRevision(version=self.plan_version, summary=summary, timestamp=_now())
        )
        return self.plan_version

    def add_conversation_message(self, role: str, content: str) -> None:
        """Append a message, trimming the history once it grows past 50."""
        self.conversation_history.append(ConversationMsg(role=role, content=content))
        if len(self.conversation_history) > CONVERSATION_LIMIT:
            self.trim_conversation_history(CONVERSATION_KEEP)

    def trim_conversation_history(self, max_messages: int) -> None:
        """Keep the last ``max_messages`` messages behind a system summary."""
        if len(self.conversation_history) <= max_messages:
            return
        trim_count = len(self.conversation_history) - max_messages
        summary = ConversationMsg(
            role="system",
            content=f"[Earlier conversation truncated — {trim_count} messages removed]",
        )
        self.conversation_history = [summary, *self.conversation_history[trim_count:]]

    def executable_tasks(self) -> list[Task]:
        """Return pending tasks whose dependencies are done.

        Pending tasks depending on a failed, cancelled or skipped task are
        marked skipped, and the skipping cascades through dependants.
        """
        status_of = {t.id: t.status for t in self.tasks}

        changed = True
        while changed:
            changed = False
            for task in self.tasks:
                if task.status != TaskStatus.PENDING:
                    continue
                if any(status_of.get(dep) in _BLOCKING for dep in task.depends_on):
                    task.status = TaskStatus.SKIPPED
                    status_of[task.id] = TaskStatus.SKIPPED
                    changed = True

        return [
            t
            for t in self.tasks
            if t.status == TaskStatus.PENDING
            and all(status_of.get(dep) == TaskStatus.DONE for dep in t.depends_on)
        ]

    def generate_replan_context(self) -> str:
        """Build the system context injected when returning to planning."""
        lines = [
            "[System context — current project state]",
            f"Plan version: {self.plan_version}",
        ]
        if self.project_name:
            lines.append(f"Project: {self.project_name}")

        completed = self.completed_tasks()
        if completed:
            lines.append("")
            lines.append("COMPLETED TASKS (do NOT regenerate or modify these):")
            lines.extend(f"  {t.id}: {t.title}" for t in completed)

        pending = self.pending_tasks()
        if pending:
            lines.append("")
            lines.append("PENDING TASKS (can be modified, reordered, or removed):")
            lines.extend(f"  {t.id}: {t.title}" for t in pending)

        failed = self.failed_tasks()
        if failed:
            lines.append("")
            lines.append("FAILED TASKS (may need to be retried or redesigned):")
            for t in failed:
                detail = t.title
                if t.retries > 0:
                    detail += f" (failed after {t.retries} retries)"
                lines.append(f"  {t.id}: {detail}")

        cancelled = self._with_status(TaskStatus.CANCELLED)
        if cancelled:
            lines.append("")
            lines.append("CANCELLED TASKS:")
            for t in cancelled:
                detail = t.title
                if t.cancelled_reason:
                    detail += f" ({t.cancelled_reason})"
                lines.append(f"  {t.id}: {detail}")

        lines.extend(
            [
                "",
                "When generating the updated plan, you MUST:",
                "- Keep all completed tasks exactly as they are — do not regenerate them",
                "- You may modify, remove, or reorder pending tasks",
                "- You may add new tasks",
                "- For failed tasks, you may redesign them as new tasks",
                "- Output the updated plan inside <plan_update> tags "
                "with the JSON format specified",
            ]
        )
        return "\n".join(lines) + "\n"


def forge_dir(root) -> str:
    """Return the ``.forge`` directory path under ``root``."""
    return os.path.join(os.fspath(root), FORGE_DIR_NAME)


def _state_path(root) -> str:
    return os.path.join(forge_dir(root), STATE_FILE_NAME)


def load(root) -> State | None:
    """Read the saved state, or return None if there is none."""
    path = _state_path(root)
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise StateError(f"reading state file: {exc}") from exc

    try:
        data = json.loads(text)
        return State.from_dict(data)
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        raise StateError(f"parsing state file: {exc}") from exc


def save(root, state: State) -> None:
    """Write ``state`` to disk, creating ``.forge`` and refreshing ``updated_at``."""
    directory = forge_dir(root)
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as exc:
        raise StateError(f"creating .forge directory: {exc}") from exc

    state.updated_at = _now()
    data = json.dumps(state.to_dict(), indent=2, ensure_ascii=False)

    try:
        with open(_state_path(root), "w", encoding="utf-8") as handle:
            handle.write(data)
    except OSError as exc:
        raise StateError(f"writing state file: {exc}") from exc


def init_state(root) -> State:
    """Create and save a fresh state; fail if one already exists."""
    path = _state_path(root)
    if os.path.exists(path):
        raise StateError(f"state already exists at {path}")
    now = _now()
    state = State(phase=Phase.PLANNING, created_at=now, updated_at=now)
    save(root, state)
    return state


def log_dir(root) -> str:
    """Return ``.forge/logs``, creating it if needed."""
    directory = os.path.join(forge_dir(root), LOGS_DIR_NAME)
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as exc:
        raise StateError(f"creating logs directory: {exc}") from exc
    return directory


def init_forge_dir(
    root,
    provider_config: Mapping[str, Any] | None = None,
    git_initialized: bool = False,
    remote_url: str = "",
) -> State:
    """Create ``.forge`` with its logs directory and .gitignore, and save a new state."""
    directory = forge_dir(root)
    try:
        os.makedirs(os.path.join(directory, LOGS_DIR_NAME), exist_ok=True)
    except OSError as exc:
        raise StateError(f"creating .forge/logs directory: {exc}") from exc

    try:
        with open(os.path.join(directory, ".gitignore"), "w", encoding="utf-8") as fh:
            fh.write("logs/\n")
    except OSError as exc:
        raise StateError(f"creating .forge/.gitignore: {exc}") from exc

    now = _now()
    state = State(phase=Phase.PLANNING, created_at=now, updated_at=now)

    if provider_config is not None:
        base_branch = detect_base_branch(root) if git_initialized else "main"
        state.settings = Settings(
            branch_pattern="forge/task-{id}",
            base_branch=base_branch,
            max_retries=3,
            auto_pr=True,
            provider=dict(provider_config),
            git_initialized=git_initialized,
            remote_url=remote_url,
        )

    save(root, state)
    return state