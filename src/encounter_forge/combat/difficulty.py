"""
Difficulty engine.

Turns a party and a desired tier into an XP budget, and a party plus a
monster roster into an XP calculation with an authoritative difficulty
classification (DMG Chapter 3).

Base XP is summed as integers across the whole roster before the
multiplier is applied, and the adjusted value is floored once at the end.
"""

from __future__ import annotations

import logging
import math
from fractions import Fraction
from typing import Any, Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..config import DEFAULT_CONFIG, ForgeConfig
from ..errors import OutOfRangeError, ValidationError
from .monsters import MonsterProfile
from .rule_tables import (
    MAX_LEVEL,
    MIN_LEVEL,
    TABLE_TIERS,
    DifficultyTier,
    count_multiplier,
    threshold_for,
)

logger = logging.getLogger("encounter-forge.combat")


# =============================================================================
# Models
# =============================================================================

class Party(BaseModel):
    """The adventuring party an encounter is built for.

    Either give ``size`` and ``average_level``, or give ``member_levels``
    and let the other two be derived.
    """

    model_config = ConfigDict(frozen=True)

    size: int = Field(description="Number of characters in the party")
    average_level: int = Field(description="Average character level")
    member_levels: tuple[int, ...] | None = Field(
        default=None, description="Individual character levels, when known"
    )

    @model_validator(mode="before")
    @classmethod
    def _derive_from_members(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("member_levels") is not None:
            levels = list(data["member_levels"])
            if not levels:
                raise ValidationError("member_levels must not be empty", field="member_levels")
            data = dict(data)
            data.setdefault("size", len(levels))
            data.setdefault("average_level", math.floor(sum(levels) / len(levels)))
        return data

    @model_validator(mode="after")
    def _check_ranges(self) -> "Party":
        if self.size < 1:
            raise OutOfRangeError("party_size", self.size, 1)
        if not MIN_LEVEL <= self.average_level <= MAX_LEVEL:
            raise OutOfRangeError("average_level", self.average_level, MIN_LEVEL, MAX_LEVEL)
        if self.member_levels is not None:
            if len(self.member_levels) != self.size:
                raise ValidationError(
                    f"Party size {self.size} does not match {len(self.member_levels)} member levels",
                    field="size",
                )
            for level in self.member_levels:
                if not MIN_LEVEL <= level <= MAX_LEVEL:
                    raise OutOfRangeError("level", level, MIN_LEVEL, MAX_LEVEL)
        return self

    @classmethod
    def of(cls, size: int, level: int) -> "Party":
        return cls(size=size, average_level=level)

    @classmethod
    def from_levels(cls, levels: Iterable[int]) -> "Party":
        return cls(member_levels=tuple(levels))

    def levels(self) -> list[int]:
        """Per-member levels (the average repeated when members are unknown)."""
        if self.member_levels is not None:
            return list(self.member_levels)
        return [self.average_level] * self.size


class XPCalculation(BaseModel):
    """XP math behind a difficulty classification."""

    model_config = ConfigDict(frozen=True)

    base_xp: int = Field(ge=0, description="Sum of individual monster XP values")
    adjusted_xp: int = Field(ge=0, description="XP after applying the encounter multiplier")
    multiplier: float = Field(ge=1, description="Group size multiplier applied")
    monster_count: int = Field(ge=0, description="Total number of creatures")
    party_size: int = Field(ge=1)
    thresholds: dict[DifficultyTier, int] = Field(description="Party XP threshold per tier")
    difficulty: DifficultyTier = Field(description="Computed difficulty classification")
    threshold: int = Field(ge=0, description="Threshold of the computed tier")


class ScalingOption(BaseModel):
    """One-creature adjustment and what it does to the difficulty."""

    model_config = ConfigDict(frozen=True)

    direction: Literal["easier", "harder"]
    monster: str
    quantity_change: int
    description: str
    adjusted_xp: int
    difficulty: DifficultyTier


# =============================================================================
# Core Functions
# =============================================================================

def party_thresholds(
    party: Party,
    config: ForgeConfig | None = None,
) -> dict[DifficultyTier, int]:
    """Calculate total XP thresholds for a party across all five tiers.

    Table tiers are summed per member. Trivial is a fraction of the party's
    total easy threshold.
    """
    config = config or DEFAULT_CONFIG
    thresholds = {tier: 0 for tier in TABLE_TIERS}
    for level in party.levels():
        for tier in TABLE_TIERS:
            thresholds[tier] += threshold_for(level, tier)

    result = {
        DifficultyTier.TRIVIAL: math.floor(thresholds[DifficultyTier.EASY] * config.trivial_fraction)
    }
    result.update(thresholds)
    return result


def compute_budget(
    party: Party,
    tier: DifficultyTier | str,
    config: ForgeConfig | None = None,
) -> int:
    """XP budget for an encounter of the given tier."""
    tier = DifficultyTier.parse(tier)
    budget = party_thresholds(party, config)[tier]
    logger.debug(f"Budget for {party.size}x L{party.average_level} ({tier.value}): {budget} XP")
    return budget


def classify_xp(adjusted_xp: int, thresholds: dict[DifficultyTier, int]) -> DifficultyTier:
    """Highest tier whose threshold the adjusted XP reaches.

    Anything above deadly is still deadly; anything below the trivial
    threshold is still trivial.
    """
    for tier in reversed(TABLE_TIERS):
        if adjusted_xp >= thresholds[tier]:
            return tier
    return DifficultyTier.TRIVIAL


def adjusted_xp_for(base_xp: int, multiplier: float) -> int:
    """Apply a multiplier to a summed base XP, flooring once."""
    return math.floor(Fraction(base_xp) * Fraction(multiplier))


def classify(
    party: Party,
    roster: Iterable[MonsterProfile],
    config: ForgeConfig | None = None,
) -> XPCalculation:
    """Compute base XP, adjusted XP and difficulty for a roster.

    An empty roster is a no-op encounter: 0 XP, multiplier 1, trivial.
    """
    roster = list(roster)
    thresholds = party_thresholds(party, config)

    base_xp = sum(monster.total_xp for monster in roster)
    monster_count = sum(monster.quantity for monster in roster)

    if monster_count == 0:
        multiplier = 1.0
    else:
        multiplier = count_multiplier(monster_count, party.size)
    adjusted_xp = adjusted_xp_for(base_xp, multiplier)
    difficulty = classify_xp(adjusted_xp, thresholds)

    logger.debug(
        f"Classified {monster_count} monsters: {base_xp} base XP x{multiplier} "
        f"= {adjusted_xp} adjusted ({difficulty.value})"
    )

    return XPCalculation(
        base_xp=base_xp,
        adjusted_xp=adjusted_xp,
        multiplier=multiplier,
        monster_count=monster_count,
        party_size=party.size,
        thresholds=thresholds,
        difficulty=difficulty,
        threshold=thresholds[difficulty],
    )


def scaling_options(
    party: Party,
    roster: Iterable[MonsterProfile],
    config: ForgeConfig | None = None,
) -> list[ScalingOption]:
    """Suggest one-creature adjustments to make an encounter easier or harder.

    For every roster entry, reports the effect of removing one creature
    (dropping the entry when it is the last one) and of adding one.
    Removing the only creature of a one-entry roster is not offered.
    """
    roster = list(roster)
    options: list[ScalingOption] = []

    for index, monster in enumerate(roster):
        if monster.quantity > 1 or len(roster) > 1:
            if monster.quantity > 1:
                easier = roster[:index] + [monster.with_quantity(monster.quantity - 1)] + roster[index + 1:]
            else:
                easier = roster[:index] + roster[index + 1:]
            calc = classify(party, easier, config)
            options.append(ScalingOption(
                direction="easier",
                monster=monster.name,
                quantity_change=-1,
                description=f"Remove one {monster.name}",
                adjusted_xp=calc.adjusted_xp,
                difficulty=calc.difficulty,
            ))

        harder = roster[:index] + [monster.with_quantity(monster.quantity + 1)] + roster[index + 1:]
        calc = classify(party, harder, config)
        options.append(ScalingOption(
            direction="harder",
            monster=monster.name,
            quantity_change=1,
            description=f"Add one {monster.name}",
            adjusted_xp=calc.adjusted_xp,
            difficulty=calc.difficulty,
        ))

    return options


def render_xp_summary(calc: XPCalculation) -> str:
    """Format an XPCalculation for direct display."""
    thresholds = " | ".join(
        f"{tier.value.capitalize()} {calc.thresholds[tier]:,}" for tier in calc.thresholds
    )
    return "\n".join([
        f"Base XP: {calc.base_xp:,} ({calc.monster_count} monsters)",
        f"Multiplier: x{calc.multiplier:g} (party of {calc.party_size})",
        f"Adjusted XP: {calc.adjusted_xp:,}",
        f"Thresholds: {thresholds}",
        f"Difficulty: {calc.difficulty.value.upper()}",
    ])
