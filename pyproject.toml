[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nodeproblem"
version = "0.1.0"
description = "Detect node problems from system logs and report them as conditions, events and metrics."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "monitoring",
    "node",
    "kernel log",
    "syslog",
    "kmsg",
    "log monitor",
    "problem detection",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Operating System :: Microsoft :: Windows",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nodeproblem"]

[tool.hatch.build.targets.sdist]
include = ["nodeproblem", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
