"""
Configuration for the encounter forge.

Rule floors, budget tolerance and phase-generation knobs live here so the
composer and the monster model read them from one place. A config can be
loaded from a YAML file; unknown keys are rejected.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger("encounter-forge.config")

CONFIG_ENV_VAR = "ENCOUNTER_FORGE_CONFIG"


class ForgeConfig(BaseModel):
    """Tunable settings for encounter composition and monster validation."""

    model_config = ConfigDict(extra="forbid")

    # Monster capability gates
    legendary_rules_floor: float = Field(
        default=5,
        ge=0,
        le=30,
        description="Minimum CR for a monster to legally carry legendary actions",
    )
    legendary_offer_floor: float = Field(
        default=2,
        ge=0,
        le=30,
        description="Minimum CR at which the forge offers the 'can become legendary' option",
    )
    lair_floor: float = Field(
        default=10,
        ge=0,
        le=30,
        description="Minimum CR for a legendary monster to have lair actions",
    )
    lair_offer_floor: float = Field(
        default=3,
        ge=0,
        le=30,
        description="Minimum CR at which the forge offers the lair option to a legendary monster",
    )

    # Difficulty engine
    trivial_fraction: float = Field(
        default=0.5,
        gt=0.0,
        lt=1.0,
        description="Fraction of the easy threshold used as the trivial threshold",
    )

    # Composer
    budget_tolerance_low: float = Field(
        default=0.8,
        gt=0.0,
        description="Lower edge of the accepted roster window as a fraction of budget",
    )
    budget_tolerance_high: float = Field(
        default=1.2,
        gt=0.0,
        description="Upper edge of the accepted roster window as a fraction of budget",
    )
    max_group_size: int = Field(
        default=8,
        ge=1,
        le=30,
        description="Largest number of identical creatures the composer puts in one group",
    )

    # Phase graph
    boss_hp_fractions: list[float] = Field(
        default_factory=lambda: [0.75, 0.5, 0.25],
        min_length=1,
        description="Boss HP fractions that trigger successive boss phases",
    )
    wave_round_interval: int = Field(
        default=2,
        ge=1,
        description="Rounds between reinforcement waves in multi-wave encounters",
    )

    log_level: str = Field(default="INFO", description="Logging level for the tool surface")

    @field_validator("boss_hp_fractions")
    @classmethod
    def _check_fractions(cls, value: list[float]) -> list[float]:
        for fraction in value:
            if not 0.0 < fraction < 1.0:
                raise ValueError(f"boss HP fractions must be between 0 and 1, got {fraction}")
        if any(b >= a for a, b in zip(value, value[1:])):
            raise ValueError(f"boss HP fractions must be strictly decreasing, got {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _check_cross_fields(self) -> "ForgeConfig":
        if self.legendary_offer_floor > self.legendary_rules_floor:
            raise ValueError(
                "legendary_offer_floor must not exceed legendary_rules_floor "
                f"({self.legendary_offer_floor} > {self.legendary_rules_floor})"
            )
        if not self.budget_tolerance_low <= 1.0 <= self.budget_tolerance_high:
            raise ValueError(
                "budget tolerances must bracket 1.0 "
                f"(got {self.budget_tolerance_low}..{self.budget_tolerance_high})"
            )
        return self

    def validation_context(self) -> dict[str, Any]:
        """Context passed to MonsterProfile validation."""
        return {
            "legendary_floor": self.legendary_rules_floor,
            "lair_floor": self.lair_floor,
        }


DEFAULT_CONFIG = ForgeConfig()


def load_config(path: str | Path | None = None) -> ForgeConfig:
    """Load a ForgeConfig from YAML.

    Args:
        path: YAML file to read. Falls back to the ``ENCOUNTER_FORGE_CONFIG``
            environment variable; with neither set, returns the defaults.

    Returns:
        The validated configuration.

    Raises:
        FileNotFoundError: If the configured file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a setting is invalid.
    """
    if path is None:
        env_path = os.getenv(CONFIG_ENV_VAR)
        if not env_path:
            logger.debug("No config file configured, using defaults")
            return ForgeConfig()
        path = env_path

    config_path = Path(path)
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping at the top level")

    config = ForgeConfig(**data)
    logger.debug(f"Loaded config from {config_path}")
    return config
