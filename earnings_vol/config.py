"""
Engine Configuration
====================

Thresholds and numerical settings for the signal pipeline. Values can be
overridden from the environment (or a .env file) using the EARNINGS_VOL_
prefix, e.g. EARNINGS_VOL_VOLUME_THRESHOLD=2000000.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

ENV_PREFIX = "EARNINGS_VOL_"
_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    """
    Signal generator settings.

    Attributes:
        iv_rv_threshold: Minimum IV30/RV30 ratio
        term_slope_threshold: Maximum term-structure slope (backwardation)
        volume_threshold: Minimum 30-day average share volume
        lookback_days: Days of price history requested from the provider
        min_price_bars: Bars required before a signal is attempted
        rv_window: Yang-Zhang window for RV30
        volume_window: Bars averaged for the volume criterion
        min_term_dte / max_term_dte: DTE range used for term-structure points
        min_spread_dte / max_spread_dte: DTE range for the put/call IV spread
        risk_free_rate: Continuous risk-free rate
        dividend_yield: Continuous dividend yield
        max_workers: Thread pool size for grid searches
        enable_model_selection: Calibrate and select a model for the theoretical IV
        min_selection_observations: Market IV points required before selecting
    """
    iv_rv_threshold: float = 1.25
    term_slope_threshold: float = -0.00406
    volume_threshold: float = 1_500_000.0
    lookback_days: int = 90
    min_price_bars: int = 30
    rv_window: int = 30
    volume_window: int = 30
    min_term_dte: int = 1
    max_term_dte: int = 60
    min_spread_dte: int = 10
    max_spread_dte: int = 60
    risk_free_rate: float = 0.05
    dividend_yield: float = 0.02
    max_workers: int = 4
    enable_model_selection: bool = True
    min_selection_observations: int = 5

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> 'EngineConfig':
        """
        Build a config from EARNINGS_VOL_* environment variables.

        Args:
            dotenv_path: Optional .env file; defaults to searching the cwd

        Returns:
            EngineConfig with overrides applied

        Raises:
            ConfigError: If a variable cannot be parsed
        """
        load_dotenv(dotenv_path)

        overrides = {}
        for f in fields(cls):
            raw = os.getenv(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if isinstance(f.default, bool):
                caster = _parse_bool
            elif isinstance(f.default, int):
                caster = int
            else:
                caster = float
            try:
                overrides[f.name] = caster(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}") from e

        config = cls(**overrides)
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigError on inconsistent settings."""
        if self.rv_window < 2:
            raise ConfigError("rv_window must be at least 2")
        if self.min_price_bars < 3:
            raise ConfigError("min_price_bars must be at least 3")
        if self.min_term_dte > self.max_term_dte:
            raise ConfigError("min_term_dte must not exceed max_term_dte")
        if self.min_spread_dte > self.max_spread_dte:
            raise ConfigError("min_spread_dte must not exceed max_spread_dte")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be positive")
        if self.min_selection_observations < 5:
            raise ConfigError("min_selection_observations must be at least 5")
