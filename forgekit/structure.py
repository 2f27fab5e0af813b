"""Walk a project tree to count files and lines and draw a shallow outline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterator

from forgekit.language import dedup

SKIP_DIRS = frozenset({
    ".git", ".forge", "node_modules", "vendor", "__pycache__", ".venv", "venv",
    "dist", "build", "target", ".idea", ".vscode", ".next", ".nuxt", "coverage",
})

CODE_EXTENSIONS = frozenset({
    ".go", ".py", ".js", ".ts", ".jsx", ".tsx", ".rs", ".java", ".rb", ".c",
    ".cpp", ".h", ".cs", ".php", ".swift", ".kt", ".scala", ".html", ".css",
    ".sql", ".sh", ".yaml", ".yml", ".json", ".toml", ".md",
})

KEY_FILE_NAMES = frozenset({
    "Dockerfile", "docker-compose.yml", "docker-compose.yaml", "Makefile",
    "Justfile", "Taskfile.yml", ".gitlab-ci.yml", "Jenkinsfile", "nginx.conf",
    "Caddyfile", "fly.toml", "render.yaml", "railway.json", "vercel.json",
    "netlify.toml",
})

GITHUB_ACTIONS_MARKER = "GitHub Actions CI found"
TREE_TRUNCATED_MARKER = "... (tree output truncated)"

MAX_LOC_FILE_SIZE = 1 << 20
MAX_TREE_DEPTH = 3
MAX_ENTRIES_PER_DIR = 15
SHOW_ENTRIES_PER_DIR = 10
MAX_TREE_LINES = 100


@dataclass
class StructureInfo:
    """File count, line estimate, tree outline and notable files of a project."""

    file_count: int = 0
    loc: int = 0
    structure: str = ""
    key_files: list[str] = field(default_factory=list)


def _is_hidden(name: str) -> bool:
    return name.startswith(".") and name != ".github"


def _sorted_entries(directory: str) -> list[os.DirEntry]:
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda e: e.name)
    except OSError:
        return []


def _is_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError:
        return False


def _walk_files(directory: str) -> Iterator[os.DirEntry]:
    """Yield non-directory entries in lexical order, pruning skipped directories."""
    for entry in _sorted_entries(directory):
        if _is_dir(entry):
            if entry.name in SKIP_DIRS or _is_hidden(entry.name):
                continue
            yield from _walk_files(entry.path)
        else:
            yield entry


def _count_lines(entry: os.DirEntry) -> int:
    try:
        if entry.stat(follow_symlinks=False).st_size > MAX_LOC_FILE_SIZE:
            return 0
        with open(entry.path, "rb") as handle:
            data = handle.read()
    except OSError:
        return 0
    count = data.count(b"\n")
    if data and not data.endswith(b"\n"):
        count += 1
    return count


def _build_tree(directory: str, depth: int) -> list[str]:
    if depth > MAX_TREE_DEPTH:
        return []

    dirs: list[str] = []
    files: list[str] = []
    for entry in _sorted_entries(directory):
        if _is_hidden(entry.name):
            continue
        if _is_dir(entry):
            if entry.name not in SKIP_DIRS:
                dirs.append(entry.name)
        else:
            files.append(entry.name)

    ordered = [(name, True) for name in dirs] + [(name, False) for name in files]
    truncated = len(ordered) > MAX_ENTRIES_PER_DIR
    shown = ordered[:SHOW_ENTRIES_PER_DIR] if truncated else ordered

    indent = "  " * depth
    lines: list[str] = []
    for name, is_dir in shown:
        if is_dir:
            lines.append(f"{indent}{name}/")
            lines.extend(_build_tree(os.path.join(directory, name), depth + 1))
        else:
            lines.append(f"{indent}{name}")

    if truncated:
        lines.append(f"{indent}... and {len(ordered) - SHOW_ENTRIES_PER_DIR} more")
    return lines


def scan_structure(root) -> StructureInfo:
    """Count files and lines of code, find key files and outline the tree."""
    root = os.fspath(root)
    file_count = 0
    loc = 0
    key_files: list[str] = []

    for entry in _walk_files(root):
        name = entry.name
        if name.startswith("."):
            continue
        file_count += 1

        rel = os.path.relpath(entry.path, root).replace(os.sep, "/")
        if name in KEY_FILE_NAMES:
            key_files.append(rel)
        if rel.startswith(".github/workflows/") and name.endswith(".yml"):
            key_files.append(GITHUB_ACTIONS_MARKER)

        if os.path.splitext(name)[1].lower() in CODE_EXTENSIONS:
            loc += _count_lines(entry)

    tree = _build_tree(root, 0)
    if len(tree) > MAX_TREE_LINES:
        tree = [*tree[:MAX_TREE_LINES], TREE_TRUNCATED_MARKER]

    return StructureInfo(
        file_count=file_count,
        loc=loc,
        structure="\n".join(tree),
        key_files=dedup(key_files),
    )