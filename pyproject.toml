[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dillsock"
version = "0.1.0"
description = "Blocking byte-stream and message sockets with absolute deadlines: TCP, TLS, SOCKS5, suffix and terminator framing"
requires-python = ">=3.10"
dependencies = []
keywords = ["sockets", "tcp", "tls", "socks5", "framing", "deadline", "red-black tree"]
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
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest", "cryptography"]

[tool.hatch.build.targets.wheel]
packages = ["dillsock"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
