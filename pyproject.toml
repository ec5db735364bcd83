[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "parkedge"
version = "0.1.0"
description = "Edge-side parking sensor core: spot state and timers, frame buffering, and uploads of parking events to a server."
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "pillow",
]
keywords = ["parking", "sensor", "occupancy", "edge", "camera", "enforcement"]
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
    "Topic :: Scientific/Engineering :: Image Recognition",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["parkedge"]

[tool.hatch.build.targets.sdist]
include = [
    "parkedge",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
