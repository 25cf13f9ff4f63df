"""
gatekeeper config package public API.

File: src/gatekeeper/config/__init__.py

Purpose
- Export config loading/validation entrypoints, public error types, and the typed
  settings struct handed to every component.

Functional requirements
- Support loading from ``gatekeeper.toml`` + ``GATEKEEPER_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from gatekeeper.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from gatekeeper.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    GatekeeperConfig,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    parse_interval,
    validate_config,
)
from gatekeeper.config.settings import (
    AutomationPolicy,
    ConflictRule,
    ContributorProfile,
    GatekeeperSettings,
    GitSettings,
    MonitorSettings,
    RiskPattern,
    ValidationSettings,
)

__all__ = [
    "AutomationPolicy",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "ConflictRule",
    "ContributorProfile",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "GatekeeperConfig",
    "GatekeeperSettings",
    "GitSettings",
    "MonitorSettings",
    "PATH_FIELDS",
    "RiskPattern",
    "ValidationSettings",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "load_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "parse_interval",
    "validate_config",
]
