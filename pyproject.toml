[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "snowbattle"
version = "0.1.0"
description = "Battle server, wire protocol and tornado bot client for a multiplayer snowball shooter"
requires-python = ">=3.10"
dependencies = []
keywords = ["game-server", "multiplayer", "asyncio", "binary-protocol", "shooter"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Games/Entertainment :: First Person Shooters",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
snowbattle-server = "snowbattle.server:main"

[tool.hatch.build.targets.wheel]
packages = ["snowbattle"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
