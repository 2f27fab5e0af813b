import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from forgekit.state import (
    ConversationMsg,
    Phase,
    PlanRevision,
    ProjectSnapshot,
    Settings,
    State,
    StateError,
    Task,
    TaskStatus,
    forge_dir,
    init_forge_dir,
    init_state,
    load,
    log_dir,
    save,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_forge_dir():
    assert forge_dir("/some/root") == os.path.join("/some/root", ".forge")


def test_init_creates_state_with_defaults(tmp_path):
    s = init_state(tmp_path)
    assert s.phase == Phase.PLANNING
    assert s.plan_version == 0
    assert s.created_at is not None
    assert s.updated_at is not None
    assert os.path.isfile(os.path.join(forge_dir(tmp_path), "state.json"))


def test_init_fails_if_state_exists(tmp_path):
    init_state(tmp_path)
    with pytest.raises(StateError, match="already exists"):
        init_state(tmp_path)


def test_load_returns_none_without_state(tmp_path):
    assert load(tmp_path) is None


def test_load_reads_back_what_save_wrote(tmp_path):
    now = datetime.now(timezone.utc)
    original = State(
        project_name="test-project",
        phase=Phase.REVIEW,
        plan_version=2,
        plan_history=[
            PlanRevision(1, "Initial plan", now),
            PlanRevision(2, "Added caching", now),
        ],
        conversation_history=[
            ConversationMsg("user", "Build me an API"),
            ConversationMsg("assistant", "Sure, let me help plan that."),
        ],
        tasks=[
            Task(
                id="task-001",
                title="Setup project",
                description="Initialize the project",
                acceptance_criteria=["go build passes"],
                complexity="small",
                status=TaskStatus.DONE,
                plan_version_created=1,
            )
        ],
        settings=Settings(
            test_command="go test ./...",
            branch_pattern="forge/{{number}}-{{slug}}",
            max_retries=3,
            auto_pr=True,
        ),
        created_at=now - timedelta(hours=1),
    )
    save(tmp_path, original)
    loaded = load(tmp_path)

    assert loaded.project_name == "test-project"
    assert loaded.phase == Phase.REVIEW
    assert loaded.plan_version == 2
    assert len(loaded.plan_history) == 2
    assert len(loaded.conversation_history) == 2
    assert loaded.conversation_history[0].role == "user"
    assert loaded.settings is not None
    assert loaded.settings.test_command == "go test ./..."
    assert [t.id for t in loaded.tasks] == ["task-001"]


def test_load_corrupt_file_raises(tmp_path):
    os.makedirs(forge_dir(tmp_path))
    with open(os.path.join(forge_dir(tmp_path), "state.json"), "w") as fh:
        fh.write("{not json")
    with pytest.raises(StateError, match="parsing state file"):
        load(tmp_path)


def test_load_accepts_go_style_timestamps(tmp_path):
    os.makedirs(forge_dir(tmp_path))
    data = {
        "phase": "planning",
        "plan_version": 0,
        "created_at": "2025-01-15T10:30:00.123456789Z",
        "updated_at": "2025-01-15T10:30:00Z",
    }
    with open(os.path.join(forge_dir(tmp_path), "state.json"), "w") as fh:
        json.dump(data, fh)
    loaded = load(tmp_path)
    assert loaded.created_at == _utc(2025, 1, 15, 10, 30, 0, 123456)
    assert loaded.updated_at == _utc(2025, 1, 15, 10, 30)


def test_save_updates_updated_at(tmp_path):
    before = datetime.now(timezone.utc) - timedelta(seconds=1)
    s = State(phase=Phase.PLANNING, created_at=before, updated_at=before)
    save(tmp_path, s)
    assert s.updated_at > before


def test_save_creates_forge_directory(tmp_path):
    created = _utc(2025, 3, 1, 12)
    save(tmp_path, State(project_name="fresh", created_at=created))
    assert os.path.isdir(forge_dir(tmp_path))
    loaded = load(tmp_path)
    assert loaded.project_name == "fresh"
    assert loaded.phase == Phase.PLANNING
    assert loaded.created_at == created


@pytest.mark.parametrize(
    "ids, expected",
    [
        ([], "task-001"),
        (["task-001"], "task-002"),
        (["task-001", "task-002", "task-003"], "task-004"),
        (["task-001", "task-005"], "task-006"),
        (["task-010", "task-003"], "task-011"),
    ],
)
def test_next_task_id(ids, expected):
    s = State(tasks=[Task(id=i) for i in ids])
    assert s.next_task_id() == expected


def test_add_task():
    s = State(plan_version=2)
    task = s.add_task(
        "Setup project",
        "Initialize Go module",
        "small",
        ["go.mod exists", "go build passes"],
        None,
    )
    assert task.id == "task-001"
    assert task.status == TaskStatus.PENDING
    assert task.plan_version_created == 2
    assert task.plan_version_modified == 2
    assert len(task.acceptance_criteria) == 2

    task2 = s.add_task("Add auth", "JWT auth", "medium", ["login works"], ["task-001"])
    assert task2.id == "task-002"
    assert task2.depends_on == ["task-001"]
    assert len(s.tasks) == 2


@pytest.fixture
def mixed_state():
    return State(
        tasks=[
            Task(id="task-001", status=TaskStatus.DONE, title="Done task"),
            Task(id="task-002", status=TaskStatus.PENDING, title="Pending task"),
            Task(id="task-003", status=TaskStatus.FAILED, title="Failed task"),
            Task(id="task-004", status=TaskStatus.CANCELLED, title="Cancelled task"),
            Task(id="task-005", status=TaskStatus.SKIPPED, title="Skipped task"),
            Task(id="task-006", status=TaskStatus.IN_PROGRESS, title="In progress task"),
            Task(id="task-007", status=TaskStatus.PENDING, title="Another pending"),
        ]
    )


def test_pending_tasks(mixed_state):
    assert [t.id for t in mixed_state.pending_tasks()] == ["task-002", "task-007"]


def test_completed_tasks(mixed_state):
    assert [t.id for t in mixed_state.completed_tasks()] == ["task-001"]


def test_failed_tasks(mixed_state):
    assert [t.id for t in mixed_state.failed_tasks()] == ["task-003"]


def test_active_tasks(mixed_state):
    active = mixed_state.active_tasks()
    assert len(active) == 5
    assert all(
        t.status not in (TaskStatus.CANCELLED, TaskStatus.SKIPPED) for t in active
    )


def test_find_task():
    s = State(tasks=[Task(id="task-001", title="First"), Task(id="task-002", title="Second")])
    assert s.find_task("task-002").title == "Second"
    assert s.find_task("task-999") is None
    s.find_task("task-001").title = "Modified"
    assert s.tasks[0].title == "Modified"


@pytest.mark.parametrize(
    "status", [TaskStatus.PENDING, TaskStatus.FAILED, TaskStatus.SKIPPED]
)
def test_cancel_task_allowed(status):
    s = State(tasks=[Task(id="task-001", status=status)])
    s.cancel_task("task-001", "no longer needed")
    task = s.find_task("task-001")
    assert task.status == TaskStatus.CANCELLED
    assert task.cancelled_reason == "no longer needed"


@pytest.mark.parametrize(
    "status, fragment",
    [
        (TaskStatus.DONE, "already done"),
        (TaskStatus.IN_PROGRESS, "in progress"),
        (TaskStatus.CANCELLED, "already cancelled"),
    ],
)
def test_cancel_task_refused(status, fragment):
    s = State(tasks=[Task(id="task-001", status=status)])
    with pytest.raises(StateError, match=fragment):
        s.cancel_task("task-001", "no longer needed")
    assert s.tasks[0].status == status


def test_cancel_task_not_found():
    with pytest.raises(StateError, match="not found"):
        State().cancel_task("task-999", "reason")


def test_bump_plan_version():
    s = State()
    assert s.bump_plan_version("Initial plan") == 1
    assert s.plan_version == 1
    assert len(s.plan_history) == 1
    assert s.plan_history[0].version == 1
    assert s.plan_history[0].summary == "Initial plan"
    assert s.plan_history[0].timestamp is not None
    assert s.bump_plan_version("Added caching") == 2
    assert len(s.plan_history) == 2


def test_add_conversation_message_appends():
    s = State()
    s.add_conversation_message("user", "Hello")
    s.add_conversation_message("assistant", "Hi there")
    assert len(s.conversation_history) == 2
    assert s.conversation_history[0].role == "user"
    assert s.conversation_history[1].content == "Hi there"


def test_add_conversation_message_auto_trims():
    s = State()
    for _ in range(51):
        s.add_conversation_message("user", "message")
    assert len(s.conversation_history) == 31
    assert s.conversation_history[0].role == "system"
    assert "truncated" in s.conversation_history[0].content


def test_trim_under_limit_is_noop():
    s = State(conversation_history=[ConversationMsg("user", "hello"), ConversationMsg("assistant", "hi")])
    s.trim_conversation_history(10)
    assert len(s.conversation_history) == 2


def test_trim_summarizes():
    s = State(conversation_history=[ConversationMsg("user", f"m{i}") for i in range(20)])
    s.trim_conversation_history(10)
    assert len(s.conversation_history) == 11
    assert s.conversation_history[0].role == "system"
    assert "10 messages removed" in s.conversation_history[0].content
    assert s.conversation_history[1].content == "m10"


def test_trim_exact_limit_is_noop():
    s = State(conversation_history=[ConversationMsg("user", x) for x in ("one", "two", "three")])
    s.trim_conversation_history(3)
    assert [m.content for m in s.conversation_history] == ["one", "two", "three"]


def test_executable_no_dependencies():
    s = State(tasks=[Task(id="task-001"), Task(id="task-002")])
    assert len(s.executable_tasks()) == 2


def test_executable_respects_dependency_order():
    s = State(
        tasks=[
            Task(id="task-001", status=TaskStatus.DONE),
            Task(id="task-002", depends_on=["task-001"]),
            Task(id="task-003", depends_on=["task-002"]),
        ]
    )
    assert [t.id for t in s.executable_tasks()] == ["task-002"]


def test_executable_skips_failed_dependencies():
    s = State(
        tasks=[
            Task(id="task-001", status=TaskStatus.FAILED),
            Task(id="task-002", depends_on=["task-001"]),
            Task(id="task-003"),
        ]
    )
    assert [t.id for t in s.executable_tasks()] == ["task-003"]
    assert s.find_task("task-002").status == TaskStatus.SKIPPED


def test_executable_skips_cancelled_dependencies():
    s = State(
        tasks=[
            Task(id="task-001", status=TaskStatus.CANCELLED),
            Task(id="task-002", depends_on=["task-001"]),
        ]
    )
    assert s.executable_tasks() == []
    assert s.find_task("task-002").status == TaskStatus.SKIPPED


def test_executable_skip_cascades():
    s = State(
        tasks=[
            Task(id="task-003", depends_on=["task-002"]),
            Task(id="task-002", depends_on=["task-001"]),
            Task(id="task-001", status=TaskStatus.FAILED),
        ]
    )
    assert s.executable_tasks() == []
    assert s.find_task("task-002").status == TaskStatus.SKIPPED
    assert s.find_task("task-003").status == TaskStatus.SKIPPED


def test_executable_waits_for_in_progress():
    s = State(
        tasks=[
            Task(id="task-001", status=TaskStatus.IN_PROGRESS),
            Task(id="task-002", depends_on=["task-001"]),
        ]
    )
    assert s.executable_tasks() == []
    assert s.find_task("task-002").status == TaskStatus.PENDING


def test_generate_replan_context():
    s = State(
        project_name="my-api",
        plan_version=3,
        tasks=[
            Task(id="task-001", title="Initialize Go project", status=TaskStatus.DONE),
            Task(id="task-002", title="Add user authentication with JWT", status=TaskStatus.DONE),
            Task(
                id="task-003",
                title="Add GraphQL endpoint",
                status=TaskStatus.CANCELLED,
                cancelled_reason="Replaced by REST in plan v2",
            ),
            Task(id="task-004", title="Add payment integration", status=TaskStatus.FAILED, retries=3),
            Task(id="task-005", title="Add order management endpoints"),
            Task(id="task-006", title="Add WebSocket notifications"),
        ],
    )
    ctx = s.generate_replan_context()
    for fragment in [
        "Plan version: 3",
        "Project: my-api",
        "COMPLETED TASKS",
        "task-001: Initialize Go project",
        "task-002: Add user authentication with JWT",
        "PENDING TASKS",
        "task-005: Add order management endpoints",
        "task-006: Add WebSocket notifications",
        "FAILED TASKS",
        "task-004: Add payment integration (failed after 3 retries)",
        "CANCELLED TASKS",
        "task-003: Add GraphQL endpoint (Replaced by REST in plan v2)",
        "Keep all completed tasks",
        "<plan_update>",
    ]:
        assert fragment in ctx


def test_generate_replan_context_empty():
    ctx = State(plan_version=1).generate_replan_context()
    assert ctx.startswith("[System context — current project state]\nPlan version: 1\n")
    assert "COMPLETED TASKS" not in ctx
    assert "Project:" not in ctx


def test_round_trip(tmp_path):
    completed_at = _utc(2025, 1, 15, 10, 30)
    original = State(
        project_name="round-trip-test",
        phase=Phase.EXECUTION,
        plan_version=3,
        plan_history=[
            PlanRevision(1, "Initial plan", _utc(2025, 1, 1)),
            PlanRevision(2, "Added caching", _utc(2025, 1, 2)),
            PlanRevision(3, "Removed GraphQL", _utc(2025, 1, 3)),
        ],
        conversation_history=[
            ConversationMsg("user", "Build a REST API"),
            ConversationMsg("assistant", "Sure, let me plan that."),
            ConversationMsg("system", "[context]"),
        ],
        settings=Settings(
            test_command="make test",
            build_command="make build",
            branch_pattern="forge/{{number}}-{{slug}}",
            max_retries=5,
            auto_pr=True,
            env_vars={"GO_ENV": "test"},
            extra_context="Some extra context",
        ),
        tasks=[
            Task(
                id="task-001",
                title="First task",
                description="Do the first thing",
                acceptance_criteria=["criterion 1", "criterion 2"],
                complexity="small",
                status=TaskStatus.DONE,
                plan_version_created=1,
                plan_version_modified=1,
                branch="forge/1-first-task",
                git_sha="abc123",
                completed_at=completed_at,
            ),
            Task(
                id="task-002",
                title="Second task",
                description="Do the second thing",
                acceptance_criteria=["criterion A"],
                depends_on=["task-001"],
                complexity="large",
                status=TaskStatus.IN_PROGRESS,
                plan_version_created=1,
                plan_version_modified=2,
                retries=2,
            ),
            Task(
                id="task-003",
                title="Cancelled task",
                description="Was removed",
                complexity="medium",
                status=TaskStatus.CANCELLED,
                plan_version_created=1,
                plan_version_modified=2,
                cancelled_reason="No longer needed",
            ),
        ],
        created_at=_utc(2025, 1, 1),
    )
    save(tmp_path, original)
    loaded = load(tmp_path)

    assert loaded.project_name == "round-trip-test"
    assert loaded.phase == Phase.EXECUTION
    assert loaded.plan_version == 3
    assert len(loaded.plan_history) == 3
    assert loaded.plan_history[2].summary == "Removed GraphQL"
    assert len(loaded.conversation_history) == 3
    assert loaded.conversation_history[0].role == "user"
    assert loaded.settings.extra_context == "Some extra context"
    assert loaded.settings.env_vars["GO_ENV"] == "test"
    assert len(loaded.tasks) == 3
    assert loaded.tasks[0].id == "task-001"
    assert loaded.tasks[0].git_sha == "abc123"
    assert loaded.tasks[0].completed_at == completed_at
    assert loaded.tasks[1].retries == 2
    assert loaded.tasks[1].depends_on == ["task-001"]
    assert loaded.tasks[2].cancelled_reason == "No longer needed"
    assert loaded.created_at == _utc(2025, 1, 1)

    with open(os.path.join(forge_dir(tmp_path), "state.json"), encoding="utf-8") as fh:
        raw = json.load(fh)
    assert "tasks" in raw
    assert "plan_version" in raw
    assert "completed_at" not in raw["tasks"][1]
    assert raw["tasks"][1]["status"] == "in-progress"


def test_to_dict_omits_empty_fields():
    data = State().to_dict()
    assert data["phase"] == "planning"
    assert data["plan_version"] == 0
    for key in ("project_name", "tasks", "settings", "snapshot", "plan_history"):
        assert key not in data


def test_init_forge_dir(tmp_path):
    s = init_forge_dir(tmp_path)
    assert s.phase == Phase.PLANNING
    assert s.settings is None
    assert os.path.isfile(os.path.join(forge_dir(tmp_path), "state.json"))
    with open(os.path.join(forge_dir(tmp_path), ".gitignore"), encoding="utf-8") as fh:
        assert fh.read() == "logs/\n"
    assert os.path.isdir(os.path.join(forge_dir(tmp_path), "logs"))


def test_init_forge_dir_with_provider(tmp_path):
    provider = {"name": "anthropic", "model": "placeholder"}
    s = init_forge_dir(tmp_path, provider, False, "git@example.com:repo.git")
    assert s.settings.branch_pattern == "forge/task-{id}"
    assert s.settings.base_branch == "main"
    assert s.settings.max_retries == 3
    assert s.settings.auto_pr is True
    assert s.settings.remote_url == "git@example.com:repo.git"
    loaded = load(tmp_path)
    assert loaded.settings.provider == provider


def test_project_snapshot_round_trip(tmp_path):
    original = State(
        phase=Phase.PLANNING,
        snapshot=ProjectSnapshot(
            is_existing=True,
            language="Go",
            frameworks=["gin", "gorm"],
            dependencies=["github.com/gin-gonic/gin"],
            file_count=47,
            loc=3200,
            structure="cmd/\ninternal/\ngo.mod",
            readme_content="# My Project",
            git_branch="main",
            git_dirty=False,
            recent_commits=["abc123 Initial commit"],
            key_files=["Dockerfile", "Makefile"],
        ),
        created_at=datetime.now(timezone.utc),
    )
    save(tmp_path, original)
    snap = load(tmp_path).snapshot
    assert snap.is_existing is True
    assert snap.language == "Go"
    assert len(snap.frameworks) == 2
    assert snap.file_count == 47
    assert snap.loc == 3200
    assert snap.git_branch == "main"
    assert len(snap.recent_commits) == 1
    assert len(snap.key_files) == 2
    assert snap.readme_content == "# My Project"


def test_log_dir(tmp_path):
    directory = log_dir(tmp_path)
    assert directory == os.path.join(forge_dir(tmp_path), "logs")
    assert os.path.isdir(directory)