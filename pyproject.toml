[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hyperism"
version = "0.1.0"
description = "Interchain security modules: multisig checkpoint verification, routing ISMs and validator announcements"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = [
    "interchain",
    "security",
    "multisig",
    "ecdsa",
    "secp256k1",
    "keccak",
    "merkle",
    "validator",
]
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
    "Topic :: Security :: Cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
hyperism = "hyperism.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["hyperism"]

[tool.hatch.build.targets.sdist]
include = [
    "hyperism",
    "tests",
    "pyproject.toml",
    "README.md",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
