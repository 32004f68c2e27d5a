[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "toybucket"
version = "1.0.0"
description = "Shopping bucket service for a toy rental platform: JWT-authenticated bucket operations backed by SQL storage"
requires-python = ">=3.10"
keywords = ["bucket", "cart", "toys", "jwt", "service"]
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
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "pyjwt",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
toybucket = "toybucket.app:main"

[tool.hatch.build.targets.wheel]
packages = ["toybucket"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
