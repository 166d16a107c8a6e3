[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "taskqueue"
version = "1.0.0"
description = "An in-memory priority task queue with a worker pool and a JSON HTTP API"
requires-python = ">=3.10"
dependencies = []
keywords = ["task queue", "worker pool", "jobs", "http api", "background tasks"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
taskqueue = "taskqueue.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["taskqueue"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
