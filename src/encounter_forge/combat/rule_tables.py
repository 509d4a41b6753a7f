"""
Rule tables for D&D 5e encounter building.

Static lookup data from the DMG and PHB: challenge rating to XP, XP
thresholds per character level, the monster-count multiplier, full-caster
spell slot progression and proficiency bonuses. Every lookup raises
OutOfRangeError when asked about a value outside its table.
"""

from __future__ import annotations

import math
from enum import Enum
from fractions import Fraction

from ..errors import OutOfRangeError


# =============================================================================
# Enumerations
# =============================================================================

class DifficultyTier(str, Enum):
    """Encounter difficulty tiers, ordered by severity."""
    TRIVIAL = "trivial"
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    DEADLY = "deadly"

    @property
    def severity(self) -> int:
        return _TIER_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, DifficultyTier):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other: object) -> bool:
        if not isinstance(other, DifficultyTier):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, DifficultyTier):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, DifficultyTier):
            return NotImplemented
        return self.severity >= other.severity

    @classmethod
    def parse(cls, value: "str | DifficultyTier") -> "DifficultyTier":
        """Parse a tier name case-insensitively."""
        if isinstance(value, DifficultyTier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise OutOfRangeError(
                "difficulty", value, "trivial", "deadly",
                message=f"Invalid difficulty: '{value}'. Must be one of: {valid}",
            ) from None


_TIER_ORDER: list[DifficultyTier] = [
    DifficultyTier.TRIVIAL,
    DifficultyTier.EASY,
    DifficultyTier.MEDIUM,
    DifficultyTier.HARD,
    DifficultyTier.DEADLY,
]

# Tiers that appear in the canonical threshold table
TABLE_TIERS: tuple[DifficultyTier, ...] = tuple(_TIER_ORDER[1:])


class CombatType(str, Enum):
    """Combat structure of an encounter."""
    SINGLE = "single"
    MULTIPLE = "multiple"
    DYNAMIC = "dynamic"
    BOSS = "boss"

    @property
    def description(self) -> str:
        return _COMBAT_TYPE_DESCRIPTIONS[self]


_COMBAT_TYPE_DESCRIPTIONS: dict[CombatType, str] = {
    CombatType.SINGLE: "all enemies present at start",
    CombatType.MULTIPLE: "enemies arrive in distinct waves/phases",
    CombatType.DYNAMIC: "enemies arrive based on triggers and conditions",
    CombatType.BOSS: "single powerful enemy with minions",
}


# =============================================================================
# Constants: XP Thresholds per Character Level (DMG p.82)
# =============================================================================

XP_THRESHOLDS: dict[int, dict[str, int]] = {
    1:  {"easy": 25,   "medium": 50,   "hard": 75,    "deadly": 100},
    2:  {"easy": 50,   "medium": 100,  "hard": 150,   "deadly": 200},
    3:  {"easy": 75,   "medium": 150,  "hard": 225,   "deadly": 400},
    4:  {"easy": 125,  "medium": 250,  "hard": 375,   "deadly": 500},
    5:  {"easy": 250,  "medium": 500,  "hard": 750,   "deadly": 1100},
    6:  {"easy": 300,  "medium": 600,  "hard": 900,   "deadly": 1400},
    7:  {"easy": 350,  "medium": 750,  "hard": 1100,  "deadly": 1700},
    8:  {"easy": 450,  "medium": 900,  "hard": 1400,  "deadly": 2100},
    9:  {"easy": 550,  "medium": 1100, "hard": 1600,  "deadly": 2400},
    10: {"easy": 600,  "medium": 1200, "hard": 1900,  "deadly": 2800},
    11: {"easy": 800,  "medium": 1600, "hard": 2400,  "deadly": 3600},
    12: {"easy": 1000, "medium": 2000, "hard": 3000,  "deadly": 4500},
    13: {"easy": 1100, "medium": 2200, "hard": 3400,  "deadly": 5100},
    14: {"easy": 1250, "medium": 2500, "hard": 3800,  "deadly": 5700},
    15: {"easy": 1400, "medium": 2800, "hard": 4300,  "deadly": 6400},
    16: {"easy": 1600, "medium": 3200, "hard": 4800,  "deadly": 7200},
    17: {"easy": 2000, "medium": 3900, "hard": 5900,  "deadly": 8800},
    18: {"easy": 2100, "medium": 4200, "hard": 6300,  "deadly": 9500},
    19: {"easy": 2400, "medium": 4900, "hard": 7300,  "deadly": 10900},
    20: {"easy": 2800, "medium": 5700, "hard": 8500,  "deadly": 12700},
}


# =============================================================================
# Constants: Challenge Rating to XP (DMG p.274)
# =============================================================================

CR_TO_XP: dict[float, int] = {
    0:     10,
    0.125: 25,
    0.25:  50,
    0.5:   100,
    1:     200,
    2:     450,
    3:     700,
    4:     1100,
    5:     1800,
    6:     2300,
    7:     2900,
    8:     3900,
    9:     5000,
    10:    5900,
    11:    7200,
    12:    8400,
    13:    10000,
    14:    11500,
    15:    13000,
    16:    15000,
    17:    18000,
    18:    20000,
    19:    22000,
    20:    25000,
    21:    33000,
    22:    41000,
    23:    50000,
    24:    62000,
    25:    75000,
    26:    90000,
    27:    105000,
    28:    120000,
    29:    135000,
    30:    155000,
}

VALID_CRS: tuple[float, ...] = tuple(sorted(CR_TO_XP))

# Monster forge tiers -> inclusive CR range
CR_TIERS: dict[int, tuple[float, float]] = {
    1: (0, 2),
    2: (3, 7),
    3: (8, 14),
    4: (15, 30),
}


# =============================================================================
# Constants: Encounter Multipliers (DMG p.82)
# =============================================================================

# Ordered list of (monster_count_threshold, multiplier).
# For a given number of monsters, use the multiplier of the last entry
# whose threshold is <= monster_count.
ENCOUNTER_MULTIPLIERS: list[tuple[int, float]] = [
    (1,  1.0),
    (2,  1.5),
    (3,  2.0),
    (7,  2.5),
    (11, 3.0),
    (15, 4.0),
]

# Multiplier steps used for party size shifts. Small parties can go one
# step past x4; nothing goes below x1.
_MULTIPLIER_STEPS: list[float] = [1.0, 1.5, 2.0, 2.5, 3.0, 4.0, 5.0]

SMALL_PARTY_MAX = 2
LARGE_PARTY_MIN = 6


# =============================================================================
# Constants: Full caster spell slots (PHB p.113)
# =============================================================================

FULL_CASTER_SPELL_SLOTS: dict[int, tuple[int, ...]] = {
    1:  (2, 0, 0, 0, 0, 0, 0, 0, 0),
    2:  (3, 0, 0, 0, 0, 0, 0, 0, 0),
    3:  (4, 2, 0, 0, 0, 0, 0, 0, 0),
    4:  (4, 3, 0, 0, 0, 0, 0, 0, 0),
    5:  (4, 3, 2, 0, 0, 0, 0, 0, 0),
    6:  (4, 3, 3, 0, 0, 0, 0, 0, 0),
    7:  (4, 3, 3, 1, 0, 0, 0, 0, 0),
    8:  (4, 3, 3, 2, 0, 0, 0, 0, 0),
    9:  (4, 3, 3, 3, 1, 0, 0, 0, 0),
    10: (4, 3, 3, 3, 2, 0, 0, 0, 0),
    11: (4, 3, 3, 3, 2, 1, 0, 0, 0),
    12: (4, 3, 3, 3, 2, 1, 0, 0, 0),
    13: (4, 3, 3, 3, 2, 1, 1, 0, 0),
    14: (4, 3, 3, 3, 2, 1, 1, 0, 0),
    15: (4, 3, 3, 3, 2, 1, 1, 1, 0),
    16: (4, 3, 3, 3, 2, 1, 1, 1, 0),
    17: (4, 3, 3, 3, 2, 1, 1, 1, 1),
    18: (4, 3, 3, 3, 3, 1, 1, 1, 1),
    19: (4, 3, 3, 3, 3, 2, 1, 1, 1),
    20: (4, 3, 3, 3, 3, 2, 2, 1, 1),
}

MIN_LEVEL = 1
MAX_LEVEL = 20
MIN_ABILITY_SCORE = 1
MAX_ABILITY_SCORE = 30


# =============================================================================
# Lookups
# =============================================================================

def _check_level(level: int, field: str = "level") -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise OutOfRangeError(field, level, MIN_LEVEL, MAX_LEVEL)
    if level < MIN_LEVEL or level > MAX_LEVEL:
        raise OutOfRangeError(field, level, MIN_LEVEL, MAX_LEVEL)
    return level


def parse_cr(value: "int | float | str | Fraction") -> float:
    """Normalise a challenge rating to its float table key.

    Accepts ints, floats, Fractions and strings such as '1/4', '0.25' or '5'.

    Raises:
        OutOfRangeError: If the value is not a recognised challenge rating.
    """
    if isinstance(value, bool):
        raise OutOfRangeError("challenge_rating", value, 0, 30)

    try:
        if isinstance(value, str):
            text = value.strip()
            if text.lower().startswith("cr"):
                text = text[2:].strip()
            number = float(Fraction(text))
        else:
            number = float(value)
    except (ValueError, ZeroDivisionError, TypeError):
        raise OutOfRangeError(
            "challenge_rating", value, 0, 30,
            message=f"Unknown challenge rating: {value!r}",
        ) from None

    if number in CR_TO_XP:
        return number
    raise OutOfRangeError(
        "challenge_rating", value, 0, 30,
        message=f"Unknown challenge rating: {value!r}. Valid CRs: {[format_cr(cr) for cr in VALID_CRS]}",
    )


def format_cr(cr: float) -> str:
    """Format a CR value for display ('1/8', '1/4', '1/2', '1', '5')."""
    if cr == 0.125:
        return "1/8"
    elif cr == 0.25:
        return "1/4"
    elif cr == 0.5:
        return "1/2"
    elif cr == int(cr):
        return str(int(cr))
    else:
        return str(cr)


def xp_for_cr(cr: "int | float | str | Fraction") -> int:
    """Convert a challenge rating to its XP value."""
    return CR_TO_XP[parse_cr(cr)]


def threshold_for(level: int, tier: "DifficultyTier | str", trivial_fraction: float = 0.5) -> int:
    """Return the per-character XP threshold for a level and tier.

    The trivial tier is not in the DMG table; it is ``floor(easy * fraction)``.
    """
    _check_level(level)
    tier = DifficultyTier.parse(tier)
    if tier is DifficultyTier.TRIVIAL:
        return math.floor(XP_THRESHOLDS[level]["easy"] * trivial_fraction)
    return XP_THRESHOLDS[level][tier.value]


def count_multiplier(monster_count: int, party_size: int = 4) -> float:
    """Get the encounter multiplier for a number of monsters.

    Applies the DMG multiplier table with party size adjustments:
    - Party of 1-2: one step more severe
    - Party of 3-5: standard multiplier
    - Party of 6+: one step less severe (never below x1)

    A lone monster is always x1 regardless of party size.

    Raises:
        OutOfRangeError: If monster_count < 1 or party_size < 1.
    """
    if monster_count < 1:
        raise OutOfRangeError("monster_count", monster_count, 1)
    if party_size < 1:
        raise OutOfRangeError("party_size", party_size, 1)

    if monster_count == 1:
        return 1.0

    base_multiplier = ENCOUNTER_MULTIPLIERS[0][1]
    for threshold, multiplier in ENCOUNTER_MULTIPLIERS:
        if monster_count >= threshold:
            base_multiplier = multiplier

    step_index = _MULTIPLIER_STEPS.index(base_multiplier)
    if party_size <= SMALL_PARTY_MAX:
        step_index = min(step_index + 1, len(_MULTIPLIER_STEPS) - 1)
    elif party_size >= LARGE_PARTY_MIN:
        step_index = max(step_index - 1, 0)

    return _MULTIPLIER_STEPS[step_index]


def spell_slots(caster_level: int) -> tuple[int, ...]:
    """Spell slots per spell level 1-9 for a full caster of the given level."""
    _check_level(caster_level, "caster_level")
    return FULL_CASTER_SPELL_SLOTS[caster_level]


def proficiency_bonus(level: int) -> int:
    """Proficiency bonus by character/caster level: +2 at 1-4 up to +6 at 17-20."""
    _check_level(level)
    return 2 + (level - 1) // 4


def proficiency_bonus_for_cr(cr: "int | float | str | Fraction") -> int:
    """Monster proficiency bonus by CR: +2 at CR 0-4 up to +9 at CR 29-30."""
    value = parse_cr(cr)
    return 2 + (max(int(value), 1) - 1) // 4


def ability_modifier(score: int) -> int:
    """Ability modifier: floor((score - 10) / 2)."""
    if isinstance(score, bool) or not isinstance(score, int):
        raise OutOfRangeError("ability_score", score, MIN_ABILITY_SCORE, MAX_ABILITY_SCORE)
    if score < MIN_ABILITY_SCORE or score > MAX_ABILITY_SCORE:
        raise OutOfRangeError("ability_score", score, MIN_ABILITY_SCORE, MAX_ABILITY_SCORE)
    return (score - 10) // 2


def cr_range_for_tier(tier: int) -> tuple[float, float]:
    """Inclusive CR range covered by a monster forge tier (1-4)."""
    if tier not in CR_TIERS:
        raise OutOfRangeError("tier", tier, min(CR_TIERS), max(CR_TIERS))
    return CR_TIERS[tier]
