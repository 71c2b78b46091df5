"""Typed validation configuration with field-by-field merging."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, Dict, Mapping, Optional, Union

from ..errors import ConfigError
from ..pipeline.financial_calculations import ROUNDING_METHODS


@dataclass(frozen=True)
class ThresholdConfig:
    """Severity thresholds in percent."""
    low: float = 1.0
    medium: float = 5.0
    high: float = 10.0
    critical: float = 20.0


@dataclass(frozen=True)
class ToleranceConfig:
    """Absolute tolerances per check."""
    tax_calculation: float = 0.01
    total_calculation: float = 0.01
    discount_calculation: float = 0.01


@dataclass(frozen=True)
class RuleConfig:
    """Which checks run, and whether tolerances are ignored."""
    validate_tax_calculation: bool = True
    validate_total_calculation: bool = True
    validate_discount_calculation: bool = True
    validate_line_item_totals: bool = True
    strict_mode: bool = False


@dataclass(frozen=True)
class CalculationConfig:
    """Rounding policy and progress granularity."""
    precision: int = 2
    rounding_method: str = "round"
    progress_chunk_size: int = 100


@dataclass(frozen=True)
class ValidationConfig:
    """Complete validation configuration."""
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    tolerances: ToleranceConfig = field(default_factory=ToleranceConfig)
    rules: RuleConfig = field(default_factory=RuleConfig)
    calculation: CalculationConfig = field(default_factory=CalculationConfig)

    def __post_init__(self):
        _check_config(self)

    def tolerance(self, name: str) -> float:
        """Effective tolerance for a check; 0 in strict mode.

        Args:
            name: "tax_calculation", "total_calculation" or "discount_calculation"
        """
        if self.rules.strict_mode:
            return 0.0
        return getattr(self.tolerances, name)

    def to_dict(self) -> Dict[str, Any]:
        return config_to_dict(self)


_GROUPS = {
    "thresholds": ThresholdConfig,
    "tolerances": ToleranceConfig,
    "rules": RuleConfig,
    "calculation": CalculationConfig,
}


def _check_config(config: ValidationConfig) -> None:
    t = config.thresholds
    if not 0 <= t.low <= t.medium <= t.high <= t.critical:
        raise ConfigError(
            f"thresholds must satisfy 0 <= low <= medium <= high <= critical, "
            f"got {t.low}/{t.medium}/{t.high}/{t.critical}"
        )
    for f in fields(ToleranceConfig):
        if getattr(config.tolerances, f.name) < 0:
            raise ConfigError(f"tolerances.{f.name} must be >= 0")
    c = config.calculation
    if c.rounding_method not in ROUNDING_METHODS:
        raise ConfigError(
            f"calculation.rounding_method must be one of {ROUNDING_METHODS}, got '{c.rounding_method}'"
        )
    if c.precision < 0:
        raise ConfigError(f"calculation.precision must be >= 0, got {c.precision}")
    if c.progress_chunk_size < 1:
        raise ConfigError(f"calculation.progress_chunk_size must be >= 1, got {c.progress_chunk_size}")


DEFAULT_VALIDATION_CONFIG = ValidationConfig()


def _coerce_value(group: str, name: str, current: Any, value: Any) -> Any:
    """Check value against the type of the field it replaces."""
    label = f"{group}.{name}"
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{label} must be a boolean, got {value!r}")
        return value
    if isinstance(current, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{label} must be an integer, got {value!r}")
        return value
    if isinstance(current, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{label} must be a number, got {value!r}")
        return float(value)
    if not isinstance(value, type(current)):
        raise ConfigError(f"{label} must be a {type(current).__name__}, got {value!r}")
    return value


def _merge_group(group: str, current, partial: Mapping[str, Any]):
    if not isinstance(partial, Mapping):
        raise ConfigError(f"'{group}' must be a mapping, got {type(partial).__name__}")
    known = {f.name for f in fields(current)}
    unknown = set(partial) - known
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{group}': {', '.join(sorted(unknown))}")
    changes = {
        name: _coerce_value(group, name, getattr(current, name), value)
        for name, value in partial.items()
    }
    return replace(current, **changes)


def merge_config(
    base: ValidationConfig,
    partial: Optional[Union[ValidationConfig, Mapping[str, Any]]],
) -> ValidationConfig:
    """Merge a partial override over base.

    Nested groups are merged field by field; groups and fields that the
    override does not mention keep their values. A ValidationConfig override
    replaces base entirely.

    Args:
        base: Current configuration
        partial: e.g. {"rules": {"strict_mode": True}}, a ValidationConfig, or None

    Returns:
        New ValidationConfig

    Raises:
        ConfigError: On unknown keys or badly typed values
    """
    if partial is None:
        return base
    if isinstance(partial, ValidationConfig):
        return partial
    if not isinstance(partial, Mapping):
        raise ConfigError(f"Config override must be a mapping, got {type(partial).__name__}")

    unknown = set(partial) - set(_GROUPS)
    if unknown:
        raise ConfigError(f"Unknown config group(s): {', '.join(sorted(unknown))}")

    changes = {
        group: _merge_group(group, getattr(base, group), values)
        for group, values in partial.items()
        if values is not None
    }
    return replace(base, **changes)


def config_from_dict(data: Optional[Mapping[str, Any]]) -> ValidationConfig:
    """Build a config from a (possibly partial) dictionary over the defaults."""
    return merge_config(DEFAULT_VALIDATION_CONFIG, data or {})


def config_to_dict(config: ValidationConfig) -> Dict[str, Any]:
    """Convert to a plain nested dictionary."""
    return asdict(config)
