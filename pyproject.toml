[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "osctools"
version = "0.1.0"
description = "Open Sound Control argument values, port trees, automation slots and MIDI learn mapping"
requires-python = ">=3.10"
dependencies = []
keywords = ["osc", "open sound control", "midi", "automation", "audio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Multimedia :: Sound/Audio",
    "Topic :: Multimedia :: Sound/Audio :: MIDI",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["osctools"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
