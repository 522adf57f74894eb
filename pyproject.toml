[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "funcframework"
version = "1.0.0"
description = "Building blocks for serving functions: a function registry, background event and CloudEvent conversion, Pub/Sub push parsing and structured request logging."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "functions",
    "serverless",
    "cloudevents",
    "pubsub",
    "background-events",
    "structured-logging",
]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["funcframework"]

[tool.hatch.build.targets.sdist]
include = [
    "funcframework",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
