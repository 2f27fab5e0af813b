"""Helpers for inspecting and initialising git repositories."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field

GIT_TIMEOUT = 5.0

BASE_BRANCH_CANDIDATES = ("main", "master", "develop", "dev", "trunk")


class GitError(Exception):
    """Raised when a git command that must succeed fails."""


@dataclass(frozen=True)
class GitInitResult:
    """Outcome of making sure a directory is a git repository."""

    initialized: bool
    branch: str = ""
    remote_url: str = ""


@dataclass(frozen=True)
class GitInfo:
    """Repository details gathered for a project snapshot."""

    branch: str = ""
    dirty: bool = False
    commits: list[str] = field(default_factory=list)


def _run(root, args, *, capture: bool) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", *args],
        cwd=os.fspath(root),
        stdout=subprocess.PIPE if capture else subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        timeout=GIT_TIMEOUT,
        check=False,
    )


def _capture(root, *args: str) -> str | None:
    """Return trimmed stdout of a git command, or None if it failed."""
    try:
        proc = _run(root, args, capture=True)
    except (OSError, subprocess.SubprocessError):
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.decode("utf-8", "replace").strip()


def _succeeds(root, *args: str) -> bool:
    try:
        proc = _run(root, args, capture=False)
    except (OSError, subprocess.SubprocessError):
        return False
    return proc.returncode == 0


def run_git(root, *args: str) -> str:
    """Run git in ``root`` and return its trimmed output, or "" on any failure."""
    output = _capture(root, *args)
    return "" if output is None else output


def is_git_repo(root) -> bool:
    """Return True if ``root`` lies inside a git work tree."""
    return run_git(root, "rev-parse", "--is-inside-work-tree") == "true"


def branch_exists(root, branch: str) -> bool:
    """Return True if ``branch`` resolves to a revision in the repository."""
    return _succeeds(root, "rev-parse", "--verify", branch)


def current_branch(root) -> str:
    """Return the checked-out branch name, or "main" if it cannot be read."""
    output = _capture(root, "rev-parse", "--abbrev-ref", "HEAD")
    return "main" if output is None else output


def remote_url(root) -> str:
    """Return the URL of the ``origin`` remote, or "" if there is none."""
    return run_git(root, "remote", "get-url", "origin")


def init_git(root) -> GitInitResult:
    """Initialise a repository in ``root`` unless one already exists."""
    if is_git_repo(root):
        return GitInitResult(
            initialized=True,
            branch=current_branch(root),
            remote_url=remote_url(root),
        )

    try:
        proc = _run(root, ("init",), capture=False)
    except (OSError, subprocess.SubprocessError) as exc:
        raise GitError(f"failed to initialize git: {exc}") from exc
    if proc.returncode != 0:
        raise GitError(f"failed to initialize git: exit status {proc.returncode}")

    return GitInitResult(initialized=True, branch=current_branch(root), remote_url="")


def detect_base_branch(root) -> str:
    """Return the first common base branch that exists, defaulting to "main"."""
    for branch in BASE_BRANCH_CANDIDATES:
        if branch_exists(root, branch):
            return branch
    return "main"


def scan_git(root) -> GitInfo:
    """Gather branch, dirty flag and recent commits; empty if not a repository."""
    if not is_git_repo(root):
        return GitInfo()

    branch = run_git(root, "rev-parse", "--abbrev-ref", "HEAD")
    dirty = run_git(root, "status", "--porcelain") != ""
    log_output = run_git(root, "log", "--oneline", "-10")
    commits = log_output.split("\n") if log_output else []
    return GitInfo(branch=branch, dirty=dirty, commits=commits)


def add_remote(root, name: str, url: str) -> None:
    """Add a remote called ``name`` pointing at ``url``."""
    try:
        proc = _run(root, ("remote", "add", name, url), capture=False)
    except (OSError, subprocess.SubprocessError) as exc:
        raise GitError(f"adding remote {name!r}: {exc}") from exc
    if proc.returncode != 0:
        raise GitError(f"adding remote {name!r}: exit status {proc.returncode}")


def git_initialized(root) -> bool:
    """Return True if ``root`` contains a ``.git`` entry."""
    return os.path.exists(os.path.join(os.fspath(root), ".git"))