[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "forgekit"
version = "0.1.0"
description = "Project scanning, plan state tracking and plain-text view components for task-driven coding workflows"
requires-python = ">=3.10"
dependencies = []
keywords = ["scanner", "git", "planning", "tasks", "terminal", "workflow"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["forgekit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
