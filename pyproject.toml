[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "actorpool"
version = "0.1.0"
description = "Actor building blocks: worker factories with job routing, load shedding and pings, process groups and actor registries"
requires-python = ">=3.10"
dependencies = []
keywords = ["actor", "factory", "worker-pool", "job-routing", "process-group", "registry"]
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
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["actorpool"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
