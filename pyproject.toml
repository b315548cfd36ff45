[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "valkms"
version = "0.14.0"
description = "Building blocks for a Tendermint validator remote signer: privval RPC messages, canonical vote and proposal bytes, keys and key formats"
requires-python = ">=3.10"
keywords = ["tendermint", "cometbft", "validator", "privval", "ed25519", "secp256k1", "signing", "ledger"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
]
dependencies = [
    "cryptography",
    "pycryptodome",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["valkms"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
