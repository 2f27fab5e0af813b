"""Detect a project's primary language, frameworks and dependencies."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from itertools import islice
from typing import Callable

MAX_DEPENDENCIES = 20

GO_FRAMEWORKS = ("gin", "echo", "fiber", "chi", "gorilla", "bubbletea", "wails")
JS_FRAMEWORKS = (
    "react", "next", "vue", "nuxt", "angular", "express", "fastify", "nestjs", "svelte",
)
PY_FRAMEWORKS = ("django", "flask", "fastapi", "sqlalchemy", "pytorch", "tensorflow")
RS_FRAMEWORKS = ("actix", "axum", "tokio", "rocket", "serde")
DART_FRAMEWORKS = ("flutter", "riverpod", "bloc", "dio")

_REQ_SEPARATORS = ("==", ">=", "<=", "~=", "!=", ">", "<", "[")
_QUOTED_SEPARATORS = (">=", "<=", "==", "~=", "!=", ">", "<", "[", " ")


@dataclass
class LanguageInfo:
    """The detected language with its frameworks and dependencies."""

    language: str = ""
    frameworks: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)


_Detector = Callable[[str], LanguageInfo]


def detect_language(root) -> LanguageInfo:
    """Examine manifest files in ``root``; the first manifest found wins."""
    detectors: list[tuple[str, str, _Detector | None]] = [
        ("go.mod", "Go", detect_go),
        ("package.json", "", detect_js),
        ("requirements.txt", "Python", detect_python_requirements),
        ("pyproject.toml", "Python", detect_python_pyproject),
        ("setup.py", "Python", None),
        ("Pipfile", "Python", None),
        ("Cargo.toml", "Rust", detect_rust),
        ("pom.xml", "Java", None),
        ("build.gradle", "Java", None),
        ("build.gradle.kts", "Kotlin", None),
        ("Gemfile", "Ruby", None),
        ("composer.json", "PHP", None),
        ("Package.swift", "Swift", None),
        ("pubspec.yaml", "Dart/Flutter", detect_dart),
        ("mix.exs", "Elixir", None),
    ]

    for file_name, language, detect in detectors:
        path = os.path.join(os.fspath(root), file_name)
        if not os.path.exists(path):
            continue
        if detect is None:
            return LanguageInfo(language=language)
        info = detect(path)
        if not info.language:
            info.language = language
        return info

    return LanguageInfo()


def _limit(deps: list[str]) -> list[str]:
    return deps[:MAX_DEPENDENCIES]


def _python_frameworks(name: str) -> list[str]:
    lower = name.lower()
    return [fw for fw in PY_FRAMEWORKS if lower == fw or lower.startswith(fw + "-")]


def detect_go(path) -> LanguageInfo:
    """Parse the ``require`` block of a go.mod file."""
    deps: list[str] = []
    frameworks: list[str] = []
    in_require = False

    for line in read_lines(path, 200):
        trimmed = line.strip()
        if trimmed == "require (":
            in_require = True
            continue
        if trimmed == ")":
            in_require = False
            continue
        if in_require and trimmed and not trimmed.startswith("//"):
            fields = trimmed.split()
            if fields:
                dep = fields[0]
                deps.append(dep)
                lower = dep.lower()
                frameworks.extend(fw for fw in GO_FRAMEWORKS if fw in lower)

    return LanguageInfo("Go", frameworks, _limit(deps))


def detect_js(path) -> LanguageInfo:
    """Parse dependency sections of a package.json file."""
    path = os.fspath(path)
    language = "JavaScript"
    if os.path.exists(os.path.join(os.path.dirname(path), "tsconfig.json")):
        language = "TypeScript"

    try:
        with open(path, "rb") as handle:
            content = handle.read().decode("utf-8", "replace")
    except OSError:
        return LanguageInfo(language)

    deps: list[str] = []
    frameworks: list[str] = []
    in_deps = False

    for line in content.split("\n"):
        trimmed = line.strip()
        if '"dependencies"' in trimmed or '"devDependencies"' in trimmed:
            in_deps = True
            continue
        if in_deps and trimmed == "}":
            in_deps = False
            continue
        if in_deps and '"' in trimmed:
            parts = trimmed.split('"', 3)
            if len(parts) >= 2:
                name = parts[1]
                if name and not name.startswith("@types/"):
                    deps.append(name)
                    lower = name.lower()
                    frameworks.extend(
                        fw
                        for fw in JS_FRAMEWORKS
                        if lower == fw
                        or lower.startswith(fw + "/")
                        or lower.endswith("/" + fw)
                    )

    return LanguageInfo(language, dedup(frameworks), _limit(deps))


def detect_python_requirements(path) -> LanguageInfo:
    """Parse a requirements.txt file."""
    deps: list[str] = []
    frameworks: list[str] = []

    for line in read_lines(path, 200):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        name = trimmed
        for sep in _REQ_SEPARATORS:
            idx = name.find(sep)
            if idx > 0:
                name = name[:idx]
        name = name.strip()
        if not name:
            continue
        deps.append(name)
        frameworks.extend(_python_frameworks(name))

    return LanguageInfo("Python", frameworks, _limit(deps))


def detect_python_pyproject(path) -> LanguageInfo:
    """Parse quoted dependency lists in a pyproject.toml file."""
    deps: list[str] = []
    frameworks: list[str] = []
    in_deps = False

    for line in read_lines(path, 300):
        trimmed = line.strip()
        if "dependencies" in trimmed and "[" in trimmed:
            in_deps = True
            continue
        if in_deps and trimmed == "]":
            in_deps = False
            continue
        if in_deps and '"' in trimmed:
            name = extract_dep_name(trimmed)
            if name:
                deps.append(name)
                frameworks.extend(_python_frameworks(name))

    return LanguageInfo("Python", frameworks, _limit(deps))


def detect_rust(path) -> LanguageInfo:
    """Parse the dependency tables of a Cargo.toml file."""
    deps: list[str] = []
    frameworks: list[str] = []
    in_deps = False

    for line in read_lines(path, 200):
        trimmed = line.strip()
        if trimmed in ("[dependencies]", "[dev-dependencies]"):
            in_deps = True
            continue
        if trimmed.startswith("[") and in_deps:
            in_deps = False
            continue
        if in_deps and "=" in trimmed:
            name = trimmed.split("=", 1)[0].strip()
            if name:
                deps.append(name)
                lower = name.lower()
                frameworks.extend(fw for fw in RS_FRAMEWORKS if fw in lower)

    return LanguageInfo("Rust", frameworks, _limit(deps))


def detect_dart(path) -> LanguageInfo:
    """Parse the dependency sections of a pubspec.yaml file."""
    deps: list[str] = []
    frameworks: list[str] = []
    in_deps = False

    for line in read_lines(path, 200):
        trimmed = line.strip()
        if trimmed in ("dependencies:", "dev_dependencies:"):
            in_deps = True
            continue
        if (
            in_deps
            and not line.startswith(" ")
            and not line.startswith("\t")
            and ":" in trimmed
        ):
            in_deps = False
        if in_deps and ":" in trimmed:
            name = trimmed.split(":", 1)[0].strip()
            if name and name != "sdk":
                deps.append(name)
                lower = name.lower()
                frameworks.extend(fw for fw in DART_FRAMEWORKS if lower == fw)

    return LanguageInfo("Dart/Flutter", frameworks, _limit(deps))


def read_lines(path, max_lines: int) -> list[str]:
    """Read up to ``max_lines`` lines, without line endings; [] if unreadable."""
    try:
        with open(path, "rb") as handle:
            lines = []
            for raw in islice(handle, max_lines):
                raw = raw.removesuffix(b"\n").removesuffix(b"\r")
                lines.append(raw.decode("utf-8", "replace"))
            return lines
    except OSError:
        return []


def extract_dep_name(text: str) -> str:
    """Return the package name from the first quoted string in ``text``."""
    start = text.find('"')
    if start == -1:
        return ""
    end = text.find('"', start + 1)
    if end == -1:
        return ""
    dep = text[start + 1:end]
    for sep in _QUOTED_SEPARATORS:
        idx = dep.find(sep)
        if idx > 0:
            dep = dep[:idx]
    return dep.strip()


def dedup(items) -> list[str]:
    """Return ``items`` without duplicates, keeping first occurrences in order."""
    return list(dict.fromkeys(items))