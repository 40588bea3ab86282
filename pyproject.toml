[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "elbow"
version = "0.1.0"
description = "Composable asyncio pipelines built from stages, batches and concurrent workers"
requires-python = ">=3.10"
dependencies = []
keywords = ["asyncio", "pipeline", "stream", "batch", "concurrency", "channel"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["elbow"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
