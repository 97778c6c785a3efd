[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dtmkit"
version = "0.1.0"
description = "Client toolkit for distributed transactions: saga, TCC, XA, reliable messages and sub-transaction barriers"
requires-python = ">=3.10"
keywords = ["distributed-transactions", "saga", "tcc", "xa", "barrier", "microservices"]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Database",
]
dependencies = [
    "requests",
    "pyyaml",
    "grpcio",
    "pymysql",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["dtmkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
