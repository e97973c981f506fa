[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "promkit"
version = "0.1.0"
description = "Prometheus-style metrics: gauges, histograms, process metrics and a Graphite bridge"
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = ["prometheus", "metrics", "monitoring", "graphite", "histogram", "gauge"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["promkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
