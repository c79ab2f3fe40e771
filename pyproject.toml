[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "roomchat"
version = "0.1.0"
description = "TCP chat servers and clients: echo, broadcast relay, and multi-room chat with peer file transfer"
requires-python = ">=3.10"
dependencies = []
keywords = ["chat", "tcp", "sockets", "chat-rooms", "file-transfer", "echo-server"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
roomchat-echo-server = "roomchat.echo_server:main"
roomchat-echo-client = "roomchat.echo_client:main"
roomchat-relay-server = "roomchat.relay_server:main"
roomchat-relay-client = "roomchat.relay_client:main"
roomchat-server = "roomchat.server:main"
roomchat-client = "roomchat.client:main"

[tool.hatch.build.targets.wheel]
packages = ["roomchat"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
