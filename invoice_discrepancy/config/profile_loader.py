"""Profile loader for named validation configurations."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..errors import ConfigError
from .settings import get_profiles_dir_override
from .validation_config import (
    DEFAULT_VALIDATION_CONFIG,
    ValidationConfig,
    config_from_dict,
    config_to_dict,
)

logger = logging.getLogger(__name__)

_CONFIG_GROUPS = ("thresholds", "tolerances", "rules", "calculation")


@dataclass(frozen=True)
class ValidationProfile:
    """A named validation configuration loaded from YAML."""
    name: str
    description: str = ""
    config: ValidationConfig = field(default_factory=ValidationConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationProfile":
        """Create ValidationProfile from dictionary (groups merged over the defaults)."""
        unknown = set(data) - {"name", "description", *_CONFIG_GROUPS}
        if unknown:
            raise ConfigError(f"Unknown profile key(s): {', '.join(sorted(unknown))}")
        return cls(
            name=data.get("name", "default"),
            description=data.get("description", ""),
            config=config_from_dict({g: data[g] for g in _CONFIG_GROUPS if data.get(g)}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            **config_to_dict(self.config),
        }


def get_profiles_dir() -> Path:
    """Get directory containing profile YAML files.

    Returns:
        DISCREPANCY_PROFILES_DIR if set, otherwise the profiles bundled with the package
    """
    override = get_profiles_dir_override()
    if override is not None:
        return override
    return Path(__file__).resolve().parent / "profiles"


def load_profile(profile_name: str = "default", profiles_dir: Optional[Path] = None) -> ValidationProfile:
    """Load a validation profile.

    Args:
        profile_name: Name of profile to load (without .yaml extension)
        profiles_dir: Directory to look in (default: get_profiles_dir())

    Returns:
        ValidationProfile

    Raises:
        ConfigError: If the profile file doesn't exist or is invalid
    """
    profiles_dir = Path(profiles_dir) if profiles_dir is not None else get_profiles_dir()
    profile_path = profiles_dir / f"{profile_name}.yaml"

    if not profile_path.exists():
        raise ConfigError(f"Profile not found: {profile_name} (expected at {profile_path})")

    try:
        with open(profile_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in profile {profile_name}: {e}") from e

    if not data:
        raise ConfigError(f"Profile file is empty: {profile_path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Profile {profile_name} must be a mapping, got {type(data).__name__}")

    data.setdefault("name", profile_name)
    profile = ValidationProfile.from_dict(data)
    logger.info(f"Loaded validation profile '{profile.name}' from {profile_path}")
    return profile


def list_available_profiles(profiles_dir: Optional[Path] = None) -> list[str]:
    """List all available profile names.

    Returns:
        Sorted profile names (without .yaml extension), ["default"] if none found
    """
    profiles_dir = Path(profiles_dir) if profiles_dir is not None else get_profiles_dir()

    if not profiles_dir.exists():
        return ["default"]

    profiles = [profile_file.stem for profile_file in profiles_dir.glob("*.yaml")]
    return sorted(profiles) if profiles else ["default"]


def get_default_profile() -> ValidationProfile:
    """Get default profile (always available).

    Returns:
        Profile from default.yaml, or the built-in defaults if the file is missing
    """
    try:
        return load_profile("default")
    except ConfigError as e:
        logger.warning(f"Falling back to built-in defaults: {e}")
        return ValidationProfile(
            name="default",
            description="Built-in default configuration",
            config=DEFAULT_VALIDATION_CONFIG,
        )
