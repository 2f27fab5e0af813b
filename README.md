# forgekit

Building blocks for a plan-then-execute coding workflow: scan an existing project,
keep the plan and its tasks in a JSON state file, and render simple text views of
progress, logs, chat and task lists.

## Modules

- `forgekit.scanner`: `scan(root)` returns a `ProjectSnapshot` with the detected
  language, frameworks, dependencies, file count, a line-of-code estimate, a directory
  tree, key files (Dockerfile, Makefile, GitHub Actions workflows and others), git
  branch, dirty flag, the last ten commits, the first 200 lines of `README.md` (or
  `README`) and the whole of `CLAUDE.md` if it is at most 1 MiB. A directory holding
  nothing but `.forge` and `.git` gives a snapshot with `is_existing=False`. Failing
  steps leave their fields empty instead of raising.
- `forgekit.language`: `detect_language(root)` returns a `LanguageInfo`. It checks for
  `go.mod`, `package.json` (TypeScript when `tsconfig.json` is present),
  `requirements.txt`, `pyproject.toml`, `setup.py`, `Pipfile`, `Cargo.toml`, `pom.xml`,
  `build.gradle`, `build.gradle.kts`, `Gemfile`, `composer.json`, `Package.swift`,
  `pubspec.yaml` and `mix.exs`, in that order; the first one found wins. At most 20
  dependencies are reported.
- `forgekit.structure`: `scan_structure(root)` returns a `StructureInfo` (file count,
  lines of code, a tree three levels deep, key files). Directories such as `.git`,
  `node_modules`, `vendor`, `venv` and `build` are skipped, as are hidden entries other
  than `.github`.
- `forgekit.git`: `init_git`, `scan_git`, `detect_base_branch`, `current_branch`,
  `remote_url`, `branch_exists`, `is_git_repo`, `add_remote`, `git_initialized` and
  `run_git`. These call the `git` executable with a five-second timeout. `init_git` and
  `add_remote` raise `GitError` on failure; the others return empty values.
- `forgekit.state`: `State` with its tasks, plan history, conversation history,
  `Settings` and `ProjectSnapshot`, stored as `.forge/state.json`. Functions: `load`,
  `save`, `init_state`, `init_forge_dir`, `forge_dir`, `log_dir`.
- `forgekit.progressbar`, `forgekit.logstream`, `forgekit.chat`, `forgekit.tasklist`:
  `ProgressBar`, `LogStream`, `ChatModel` and `TaskListModel` hold the state of a view
  and render it as plain text through `view()`.

## Installation

```
pip install .
```

Python 3.10 or newer is required. There are no runtime dependencies; the git helpers
and `scan` need `git` on the `PATH` to report repository details.

## Example

```python
from forgekit import scanner, state

snapshot = scanner.scan(".")
print(snapshot.language, snapshot.frameworks, snapshot.file_count)

s = state.init_state(".")
s.bump_plan_version("Initial plan")
s.add_task("Set up project", "Create the module layout", "small", ["build passes"], [])
s.add_task("Add auth", "Token login", "medium", ["login works"], ["task-001"])
state.save(".", s)

for task in s.executable_tasks():
    print(task.id, task.title)
```

Task IDs run `task-001`, `task-002`, … and follow the highest existing number.
`executable_tasks()` returns pending tasks whose dependencies are all done, and marks
as skipped any pending task that depends on a failed, cancelled or skipped one, cascading
through its dependants. `cancel_task` raises `StateError` for unknown, done, in-progress
or already-cancelled tasks. `add_conversation_message` keeps the history bounded: past 50
messages it keeps the last 30 behind a single system summary. `generate_replan_context()`
builds the text that describes completed, pending, failed and cancelled tasks for a new
round of planning.

`init_state(root)` raises `StateError` if a state file already exists. `load(root)`
returns `None` when no state file exists yet and raises `StateError` when the file cannot
be read or parsed. `init_forge_dir(root, provider_config, git_initialized, remote_url)`
also creates `.forge/logs/` and a `.forge/.gitignore` containing `logs/`, and fills in
default settings when a provider configuration is given.

## View components

- `ProgressBar(total, width, done=0).view()` draws a bar and a `done/total (pct%)`
  label; it raises `ValueError` when `done` is outside `0..total`.
- `LogStream` keeps `LogLine`s and follows the newest one; `handle_key("g")` jumps to
  the top and stops following, `handle_key("G")` jumps to the bottom and resumes.
- `ChatModel(sender, slash_handler)` keeps the message history. `submit()` sends
  `input_text` to `sender`, or a `/name args` line to `slash_handler`, which returns
  `(action, handled)`; unhandled commands add an "Unknown command" message.
  `start_stream`, `append_chunk` and `finish_stream` build a streamed reply.
  `parse_slash_command(text)` returns a `SlashCommand` or `None`.
- `TaskListModel` holds `TaskListItem`s with a cursor. `handle_key` moves with `j`/`k`,
  toggles the detail panel with `enter`, and returns a `TaskAction` for `n` (new) and,
  on editable items, `e` (edit), `d` (delete), `J` (reorder down) and `K` (reorder up).

## What the package does not do

There is no command-line program and no interactive terminal screen: the view classes
only keep state and return text, and nothing reads the keyboard or redraws a terminal.
The package does not run tasks, talk to an assistant, create branches or open pull
requests; it records tasks and their statuses, and callers change them.

## Running the tests

```
pip install .[test]
pytest
```