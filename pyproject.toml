[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minbft"
version = "0.1.0"
description = "Building blocks for a MinBFT replica: USIG identifiers, authentication, key stores, configuration, a sample ledger and in-process connectors"
requires-python = ">=3.11"
keywords = ["bft", "byzantine fault tolerance", "consensus", "usig", "ecdsa", "ledger"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Security :: Cryptography",
]
dependencies = [
    "cryptography",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["minbft"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
