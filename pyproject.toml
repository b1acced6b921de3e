[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gpufeatures"
version = "0.16.0"
description = "Generate node labels describing GPU devices, MIG layouts and sharing configuration, and build container allocation responses."
requires-python = ">=3.10"
dependencies = []
keywords = ["gpu", "mig", "node-labels", "device-plugin", "kubernetes", "cdi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gpufeatures"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
