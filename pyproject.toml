[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scrumdinger"
version = "0.1.0"
description = "Application layer for a scrum meeting service: errors, validation, auth, middleware and request handlers"
requires-python = ">=3.10"
keywords = ["scrum", "web", "api", "jwt", "middleware", "authentication"]
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
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "pyjwt",
    "cryptography",
    "httpx",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["scrumdinger"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
