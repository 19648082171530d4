"""Tolerances and rate bands that drive matching and classification."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Tuple

from .normalization import normalize_product

ENV_PREFIX = "RECON_"


class ConfigurationError(ValueError):
    """Raised when caller-supplied configuration is unusable."""


def _to_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be numeric (received {value!r}).")
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be numeric (received {value!r}).") from exc
    if not number.is_finite():
        raise ConfigurationError(f"{name} must be finite (received {value!r}).")
    return number


def _to_days(value: Any, name: str) -> int:
    number = _to_decimal(value, name)
    if number < 0 or number != number.to_integral_value():
        raise ConfigurationError(f"{name} must be a whole, non-negative number of days (received {value!r}).")
    return int(number)


def _to_band(value: Any, name: str) -> Tuple[Decimal, Decimal]:
    if isinstance(value, str):
        value = value.split(",")
    try:
        low, high = value
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a (low, high) pair (received {value!r}).") from exc
    low, high = _to_decimal(low, f"{name}[0]"), _to_decimal(high, f"{name}[1]")
    if low < 0 or high < low:
        raise ConfigurationError(f"{name} must satisfy 0 <= low <= high (received {low}, {high}).")
    return low, high


@dataclass(frozen=True)
class ReconciliationConfig:
    """Runtime configuration for a reconciliation run.

    All monetary tolerances are absolute currency units; rate values are
    percentages (``3.5`` means 3.5%).
    """

    value_match_tolerance: Decimal = Decimal("1.00")
    agent_match_tolerance: Decimal = Decimal("5.00")
    divergence_tolerance: Decimal = Decimal("0.01")
    rate_arithmetic_tolerance: Decimal = Decimal("0.50")
    plausible_rate_band: Tuple[Decimal, Decimal] = (Decimal("0.5"), Decimal("8.0"))
    rate_mismatch_tolerance: Decimal = Decimal("0.1")
    payment_window_days: int = 15
    product_rate_bands: Mapping[str, Tuple[Decimal, Decimal]] = field(default_factory=dict)
    contracted_rates: Mapping[str, Decimal] = field(default_factory=dict)

    _TOLERANCES = (
        "value_match_tolerance",
        "agent_match_tolerance",
        "divergence_tolerance",
        "rate_arithmetic_tolerance",
        "rate_mismatch_tolerance",
    )

    def __post_init__(self) -> None:
        for name in self._TOLERANCES:
            value = _to_decimal(getattr(self, name), name)
            if value < 0:
                raise ConfigurationError(f"{name} must not be negative (received {value}).")
            object.__setattr__(self, name, value)

        object.__setattr__(
            self, "payment_window_days", _to_days(self.payment_window_days, "payment_window_days")
        )
        object.__setattr__(
            self, "plausible_rate_band", _to_band(self.plausible_rate_band, "plausible_rate_band")
        )

        if not isinstance(self.product_rate_bands, Mapping):
            raise ConfigurationError("product_rate_bands must be a mapping of product -> (low, high).")
        bands = {
            normalize_product(product): _to_band(band, f"product_rate_bands.{product}")
            for product, band in self.product_rate_bands.items()
        }
        object.__setattr__(self, "product_rate_bands", bands)

        if not isinstance(self.contracted_rates, Mapping):
            raise ConfigurationError("contracted_rates must be a mapping of product -> rate.")
        rates = {}
        for product, rate in self.contracted_rates.items():
            value = _to_decimal(rate, f"contracted_rates.{product}")
            if value < 0:
                raise ConfigurationError(f"contracted_rates.{product} must not be negative.")
            rates[normalize_product(product)] = value
        object.__setattr__(self, "contracted_rates", rates)

    def band_for(self, product: str) -> Tuple[Decimal, Decimal]:
        return self.product_rate_bands.get(product, self.plausible_rate_band)

    def contracted_rate_for(self, product: str) -> Decimal | None:
        return self.contracted_rates.get(product)

    def with_overrides(self, **overrides: Any) -> "ReconciliationConfig":
        unknown = set(overrides) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ReconciliationConfig":
        return cls().with_overrides(**dict(values))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ReconciliationConfig":
        environ = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for name in (*cls._TOLERANCES, "payment_window_days", "plausible_rate_band"):
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw:
                overrides[name] = raw
        return cls().with_overrides(**overrides)


def resolve_config(config: ReconciliationConfig | Mapping[str, Any] | None) -> ReconciliationConfig:
    if config is None:
        return ReconciliationConfig()
    if isinstance(config, ReconciliationConfig):
        return config
    if isinstance(config, Mapping):
        return ReconciliationConfig.from_mapping(config)
    raise ConfigurationError(f"Unsupported configuration object: {type(config).__name__}")
