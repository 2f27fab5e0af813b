"""Build a snapshot of an existing project directory."""

from __future__ import annotations

import os

from forgekit.git import scan_git
from forgekit.language import detect_language, read_lines
from forgekit.state import ProjectSnapshot
from forgekit.structure import scan_structure

MAX_FULL_READ = 1 << 20
README_LINES = 200

_IGNORED_TOP_LEVEL = frozenset({".forge", ".git"})


def has_code_files(root) -> bool:
    """Return True if ``root`` holds anything besides ``.forge`` and ``.git``."""
    try:
        names = os.listdir(os.fspath(root))
    except OSError:
        return False
    return any(name not in _IGNORED_TOP_LEVEL for name in names)


def read_file_head(root, name: str, max_lines: int) -> str:
    """Return up to ``max_lines`` lines of ``root/name`` joined, or ""."""
    return "\n".join(read_lines(os.path.join(os.fspath(root), name), max_lines))


def read_file_full(root, name: str) -> str:
    """Return the whole of ``root/name`` if it is at most 1 MiB, else ""."""
    path = os.path.join(os.fspath(root), name)
    try:
        if os.stat(path).st_size > MAX_FULL_READ:
            return ""
        with open(path, "rb") as handle:
            return handle.read().decode("utf-8", "replace")
    except OSError:
        return ""


def scan(root) -> ProjectSnapshot:
    """Analyse ``root``; any step that fails simply leaves its fields empty."""
    if not has_code_files(root):
        return ProjectSnapshot(is_existing=False)

    structure = scan_structure(root)
    language = detect_language(root)
    git = scan_git(root)

    readme = read_file_head(root, "README.md", README_LINES)
    if not readme:
        readme = read_file_head(root, "README", README_LINES)

    return ProjectSnapshot(
        is_existing=True,
        language=language.language,
        frameworks=list(language.frameworks),
        dependencies=list(language.dependencies),
        file_count=structure.file_count,
        loc=structure.loc,
        structure=structure.structure,
        readme_content=readme,
        claude_md=read_file_full(root, "CLAUDE.md"),
        git_branch=git.branch,
        git_dirty=git.dirty,
        recent_commits=list(git.commits),
        key_files=list(structure.key_files),
    )