[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rocketpush"
version = "0.1.0"
description = "Push-style message consumer core: queue allocation strategies, consume statistics, options and consumer logic"
requires-python = ">=3.10"
dependencies = []
keywords = ["message-queue", "consumer", "load-balancing", "consistent-hashing", "statistics", "messaging"]
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
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rocketpush"]

[tool.pytest.ini_options]
addopts = "-ra"
