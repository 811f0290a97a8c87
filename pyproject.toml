[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mifarereader"
version = "0.1.0"
description = "Poll, authenticate and read MIFARE cards through a serial contactless card reader"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
]
keywords = ["mifare", "rfid", "nfc", "picc", "serial", "card reader", "lrc"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Terminals :: Serial",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
mifarereader = "mifarereader.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["mifarereader"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
