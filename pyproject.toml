[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vehicleauth"
version = "0.1.0"
description = "Authenticated, encrypted command sessions between a signer and a verifier using P-256 ECDH, AES-GCM and HMAC-SHA256"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["ecdh", "aes-gcm", "hmac", "authentication", "anti-replay", "session", "protobuf"]
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
    "Topic :: Security :: Cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["vehicleauth"]

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
strict = true
