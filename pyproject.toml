[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minifs"
version = "0.1.0"
description = "A small Unix-style block file system kept in memory, with a redo log, buffer cache, image builder and simple tools"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "filesystem",
    "inode",
    "write-ahead-log",
    "buffer-cache",
    "disk-image",
    "mkfs",
    "grep",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
minifs-mkfs = "minifs.mkfs:main"
minifs-grep = "minifs.grep:main"
minifs-ls = "minifs.ls:main"

[tool.hatch.build.targets.wheel]
packages = ["minifs"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
