[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dfdl"
version = "0.1.0"
description = "Peer-to-peer file sharing client library: index, seed and download files in chunks from peers"
requires-python = ">=3.10"
dependencies = []
keywords = ["p2p", "file-sharing", "download", "chunks", "peer-to-peer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: File Sharing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dfdl"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
