[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shellyhub"
version = "0.1.0"
description = "WebSocket hub that accepts connections from Shelly devices, identifies them and polls their state."
requires-python = ">=3.10"
keywords = ["shelly", "websocket", "home-automation", "thermostat", "json-rpc"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Home Automation",
]
dependencies = [
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
shellyhub = "shellyhub.echo_server:main"

[tool.hatch.build.targets.wheel]
packages = ["shellyhub"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
