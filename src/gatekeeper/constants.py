"""Stable constants shared across gatekeeper planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Git branch names.
DEFAULT_MAIN_BRANCH: Final[str] = "main"
DEFAULT_INTEGRATION_BRANCH: Final[str] = "integration"
DEFAULT_REMOTE: Final[str] = "origin"
OVERRIDE_BRANCH_PREFIX: Final[str] = "override"

# The boundary declaration artifact a contributor may always touch.
BOUNDARY_FILE: Final[str] = ".agent-work-boundaries.json"

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
LEDGER_SCHEMA_VERSION: Final[int] = 1
HISTORY_SCHEMA_VERSION: Final[int] = 1

# Default runtime paths (relative to the repository root unless overridden by config).
STATE_DIR: Final[PurePosixPath] = PurePosixPath(".gatekeeper")
LOG_DIR: Final[PurePosixPath] = PurePosixPath(".gatekeeper/logs")
REVIEW_LEDGER_FILE: Final[str] = "reviews.json"
INTEGRATION_HISTORY_FILE: Final[str] = "integration-history.json"
INTEGRATION_LOCK_FILE: Final[str] = "integration.lock"
OVERRIDE_LEDGER_FILE: Final[str] = "overrides.json"

# Commit message prefixes.
MERGE_MESSAGE_PREFIX: Final[str] = "Gatekeeper integration"
RESOLUTION_MESSAGE_PREFIX: Final[str] = "Gatekeeper: resolved conflicts for"
PROMOTION_MESSAGE_PREFIX: Final[str] = "Gatekeeper: promote"

__all__ = [
    "BOUNDARY_FILE",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_INTEGRATION_BRANCH",
    "DEFAULT_MAIN_BRANCH",
    "DEFAULT_REMOTE",
    "HISTORY_SCHEMA_VERSION",
    "INTEGRATION_HISTORY_FILE",
    "INTEGRATION_LOCK_FILE",
    "LEDGER_SCHEMA_VERSION",
    "LOG_DIR",
    "MERGE_MESSAGE_PREFIX",
    "OVERRIDE_BRANCH_PREFIX",
    "OVERRIDE_LEDGER_FILE",
    "PROMOTION_MESSAGE_PREFIX",
    "RESOLUTION_MESSAGE_PREFIX",
    "REVIEW_LEDGER_FILE",
    "STATE_DIR",
]
