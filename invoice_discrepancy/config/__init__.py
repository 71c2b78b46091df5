"""Configuration package."""

from .profile_loader import (
    ValidationProfile,
    get_default_profile,
    get_profiles_dir,
    list_available_profiles,
    load_profile,
)
from .validation_config import (
    DEFAULT_VALIDATION_CONFIG,
    CalculationConfig,
    RuleConfig,
    ThresholdConfig,
    ToleranceConfig,
    ValidationConfig,
    config_from_dict,
    config_to_dict,
    merge_config,
)

__all__ = [
    'DEFAULT_VALIDATION_CONFIG',
    'CalculationConfig',
    'RuleConfig',
    'ThresholdConfig',
    'ToleranceConfig',
    'ValidationConfig',
    'ValidationProfile',
    'config_from_dict',
    'config_to_dict',
    'get_default_profile',
    'get_profiles_dir',
    'list_available_profiles',
    'load_profile',
    'merge_config',
]
