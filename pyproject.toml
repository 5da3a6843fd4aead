[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "otusfw"
version = "0.1.0"
description = "Inspect and edit carl9170 (AR9170 \"otus\") firmware descriptors, send wake-on-WLAN frames and build isci OEM parameter blobs"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "firmware",
    "carl9170",
    "ar9170",
    "otus",
    "isci",
    "wake-on-wlan",
    "descriptor",
    "crc32",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
otus-fwinfo = "otusfw.fwinfo:main"
otus-checksum = "otusfw.checksum:main"
otus-miniboot = "otusfw.miniboot:main"
otus-eeprom-fix = "otusfw.eeprom_fix:main"
otus-wol = "otusfw.wol:main"
isci-create-fw = "otusfw.isci_orom:main"

[tool.hatch.build.targets.wheel]
packages = ["otusfw"]

[tool.hatch.build.targets.sdist]
include = ["otusfw", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
