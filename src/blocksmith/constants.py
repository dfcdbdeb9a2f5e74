"""Configuration constants for blocksmith."""

import re

DEFAULT_WALLET = "admin"
DEFAULT_PROFILE = "default"
PROFILE_ENV = "FOUNDRY_PROFILE"

# Project config file, also the name of the generated build profile
CONFIG_NAME = "foundry.toml"

SANDBOX_DIR_NAME = "blocksmith"
DEPLOYMENTS_DIR_NAME = "deployments"

DEFAULT_ETHER = 10000
WEI_PER_ETHER = 10**18

DEFAULT_OPTIMIZER_RUNS = 200
DEFAULT_PROGRESS_INTERVAL = 5.0

# TOML integers are signed 64-bit
MAX_PROFILE_INT = 2**63 - 1

# Anvil gas limit used instead of --disable-block-gas-limit when not forking
INFINITE_GAS_LIMIT = "99999999999999999999999"

DEFAULT_PRAGMA = "pragma solidity >=0.0.0;"
DEFAULT_LICENSE = "// SPDX-License-Identifier: UNLICENSED"

PRAGMA_PATTERN = re.compile(r"^\s*pragma\s+solidity", re.MULTILINE)
LICENSE_PATTERN = re.compile(r"^\s*//\s*SPDX-License-Identifier:", re.MULTILINE)
CONTRACT_NAME_PATTERN = re.compile(
    r"^\s*(?:abstract\s+)?(contract|library)\s+([A-Za-z$_][\w$]*)", re.MULTILINE
)

LISTENING_PATTERN = re.compile(r"^Listening on (.*)$")

# 2024-08-02T19:38:31.399817Z  INFO node::user: anvil_setLoggingEnabled
NODE_LOG_PATTERN = re.compile(
    r"^\x1b\[\d+m(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z)\x1b\[0m "
    r"\x1b\[\d+m([^\x1b]+)\x1b\[0m "
    r"\x1b\[\d+m([^\x1b]+)\x1b\[0m\x1b\[2m:\x1b\[0m (.*)$"
)

ANSI_PATTERN = re.compile(r"\x1b[^m]+m")

NODE_USER_TARGET = "node::user"
NODE_CONSOLE_TARGET = "node::console"
GAS_ESTIMATE_METHOD = "eth_estimateGas"
