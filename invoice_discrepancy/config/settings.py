"""Environment-driven settings for the discrepancy engine."""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_app_name() -> str:
    """Get application name."""
    return "Invoice Discrepancy Engine"


def get_profile_name() -> str:
    """Get name of the profile used when none is given.

    Returns:
        DISCREPANCY_PROFILE environment variable, default "default"
    """
    return os.getenv("DISCREPANCY_PROFILE", "default").strip() or "default"


def get_profiles_dir_override() -> Optional[Path]:
    """Get profile directory override.

    Returns:
        Path from DISCREPANCY_PROFILES_DIR, or None to use the bundled profiles
    """
    env_path = os.getenv("DISCREPANCY_PROFILES_DIR")
    if env_path:
        return Path(env_path)
    return None


def get_log_level() -> str:
    """Get log level for the CLI.

    Returns:
        DISCREPANCY_LOG_LEVEL (upper-cased), default "WARNING"
    """
    level = os.getenv("DISCREPANCY_LOG_LEVEL", "WARNING").upper()
    if level not in _LOG_LEVELS:
        logger.warning(f"Invalid log level: {level}, using 'WARNING'")
        return "WARNING"
    return level


def get_validated_by() -> str:
    """Get the name stamped into ValidationResult.validated_by.

    Returns:
        DISCREPANCY_VALIDATED_BY, default "system"
    """
    return os.getenv("DISCREPANCY_VALIDATED_BY", "system")
