[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "farmnode"
version = "0.1.0"
description = "MQTT bridge for a farm sensor node: registration, keep-alive and serial message forwarding"
requires-python = ">=3.10"
keywords = ["mqtt", "iot", "farm", "sensor", "serial", "gateway"]
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
    "Topic :: Home Automation",
    "Topic :: Communications",
]
dependencies = [
    "paho-mqtt>=2.0",
    "pyserial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
farmnode = "farmnode.app:main"

[tool.hatch.build.targets.wheel]
packages = ["farmnode"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
