[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "peerlink"
version = "0.1.0"
description = "LAN peer discovery over UDP broadcast, length-prefixed JSON messaging over TCP, and a polling watcher for a shared directory"
requires-python = ">=3.10"
keywords = ["peer-to-peer", "p2p", "discovery", "broadcast", "file-sharing", "lan"]
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
    "Topic :: Communications :: File Sharing",
    "Topic :: System :: Networking",
]
dependencies = [
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
peerlink = "peerlink.app:main"

[tool.hatch.build.targets.wheel]
packages = ["peerlink"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
