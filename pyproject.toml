[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "microcore"
version = "0.1.0"
description = "A small service core: YAML configuration, object wiring and lifecycle, registry model, node selection, metadata, logging and client helpers."
requires-python = ">=3.10"
keywords = [
    "microservice",
    "dependency-injection",
    "service-discovery",
    "load-balancing",
    "lifecycle",
    "configuration",
]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "pyyaml",
    "psutil",
    "requests",
    "pymysql",
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["microcore"]

[tool.hatch.build.targets.sdist]
include = [
    "microcore",
    "tests",
    "pyproject.toml",
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
