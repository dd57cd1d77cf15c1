[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "grapes"
version = "0.1.0"
description = "Building blocks for peer-to-peer streaming: chunk buffers, chunk ID sets, chunk trading messages and peer-sampling caches"
requires-python = ">=3.10"
dependencies = []
keywords = ["p2p", "peer-to-peer", "streaming", "chunks", "gossip", "peer sampling", "overlay"]
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
    "Topic :: Communications :: File Sharing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["grapes"]

[tool.pytest.ini_options]
addopts = "-ra"
