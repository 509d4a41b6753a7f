"""
Monster capability model.

A MonsterProfile holds the combat-relevant numbers of one roster entry:
challenge rating, quantity, ability scores, damage and condition defenses,
and the optional legendary, lair and spellcasting extensions. Invariants
between the extensions are checked when the profile is built; derived values
(ability modifiers, proficiency, spell save DC, spell slots) are computed on
demand.

Two legendary gates exist and are kept apart:
- legendary_allowed(): the rules gate (CR 5+ by default), enforced on every
  profile.
- can_offer_legendary(): the forge's "can become legendary" offer gate
  (CR 2+ by default), used only to decide what to offer the user.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from ..config import DEFAULT_CONFIG, ForgeConfig
from ..errors import OutOfRangeError, ValidationError
from .rule_tables import (
    MAX_ABILITY_SCORE,
    MAX_LEVEL,
    MIN_ABILITY_SCORE,
    MIN_LEVEL,
    ability_modifier,
    format_cr,
    parse_cr,
    proficiency_bonus,
    proficiency_bonus_for_cr,
    spell_slots,
    xp_for_cr,
)

logger = logging.getLogger("encounter-forge.combat")


# =============================================================================
# Enumerations
# =============================================================================

class DamageType(str, Enum):
    ACID = "acid"
    BLUDGEONING = "bludgeoning"
    COLD = "cold"
    FIRE = "fire"
    FORCE = "force"
    LIGHTNING = "lightning"
    NECROTIC = "necrotic"
    PIERCING = "piercing"
    POISON = "poison"
    PSYCHIC = "psychic"
    RADIANT = "radiant"
    SLASHING = "slashing"
    THUNDER = "thunder"


class ConditionType(str, Enum):
    BLINDED = "blinded"
    CHARMED = "charmed"
    DEAFENED = "deafened"
    EXHAUSTION = "exhaustion"
    FRIGHTENED = "frightened"
    GRAPPLED = "grappled"
    INCAPACITATED = "incapacitated"
    INVISIBLE = "invisible"
    PARALYZED = "paralyzed"
    PETRIFIED = "petrified"
    POISONED = "poisoned"
    PRONE = "prone"
    RESTRAINED = "restrained"
    STUNNED = "stunned"
    UNCONSCIOUS = "unconscious"


class Ability(str, Enum):
    """The six ability scores, keyed by their three-letter abbreviation."""
    STR = "str"
    DEX = "dex"
    CON = "con"
    INT = "int"
    WIS = "wis"
    CHA = "cha"

    @property
    def full_name(self) -> str:
        return ABILITY_NAMES[self]

    @classmethod
    def parse(cls, value: "str | Ability") -> "Ability":
        """Parse 'int', 'INT' or 'Intelligence' into an Ability."""
        if isinstance(value, Ability):
            return value
        key = str(value).strip().lower()
        for ability, name in ABILITY_NAMES.items():
            if key in (ability.value, name):
                return ability
        raise ValidationError(f"Unknown ability: {value!r}", field="ability")


ABILITY_NAMES: dict[Ability, str] = {
    Ability.STR: "strength",
    Ability.DEX: "dexterity",
    Ability.CON: "constitution",
    Ability.INT: "intelligence",
    Ability.WIS: "wisdom",
    Ability.CHA: "charisma",
}

SPELLCASTING_ABILITIES = frozenset({Ability.INT, Ability.WIS, Ability.CHA})


class CasterType(str, Enum):
    STANDARD = "standard"
    INNATE = "innate"


# =============================================================================
# Capability gates
# =============================================================================

def legendary_allowed(cr: Any, config: ForgeConfig | None = None) -> bool:
    """Rules gate: may a creature of this CR carry legendary actions?"""
    config = config or DEFAULT_CONFIG
    return parse_cr(cr) >= config.legendary_rules_floor


def can_offer_legendary(cr: Any, config: ForgeConfig | None = None) -> bool:
    """Offer gate: should the forge show the 'can become legendary' option?

    This is a UI affordance and is looser than legendary_allowed().
    """
    config = config or DEFAULT_CONFIG
    return parse_cr(cr) >= config.legendary_offer_floor


def lair_allowed(cr: Any, is_legendary: bool, config: ForgeConfig | None = None) -> bool:
    """Rules gate for lair actions: legendary and at or above the lair floor."""
    config = config or DEFAULT_CONFIG
    return is_legendary and parse_cr(cr) >= config.lair_floor


def can_offer_lair(cr: Any, is_legendary: bool, config: ForgeConfig | None = None) -> bool:
    """Offer gate for the lair option (legendary creatures only)."""
    config = config or DEFAULT_CONFIG
    return is_legendary and parse_cr(cr) >= config.lair_offer_floor


# =============================================================================
# Sub-records
# =============================================================================

class AbilityScores(BaseModel):
    """The six ability scores of a creature (1-30 each)."""

    model_config = ConfigDict(frozen=True)

    strength: int = 10
    dexterity: int = 10
    constitution: int = 10
    intelligence: int = 10
    wisdom: int = 10
    charisma: int = 10

    @model_validator(mode="before")
    @classmethod
    def _accept_abbreviations(cls, data: Any) -> Any:
        """Map 'str', 'DEX', etc. to the full field names."""
        if isinstance(data, dict):
            normalized = {}
            for key, value in data.items():
                try:
                    normalized[Ability.parse(key).full_name] = value
                except ValidationError:
                    normalized[key] = value
            return normalized
        return data

    @model_validator(mode="after")
    def _check_ranges(self) -> "AbilityScores":
        for name in ABILITY_NAMES.values():
            score = getattr(self, name)
            if score < MIN_ABILITY_SCORE or score > MAX_ABILITY_SCORE:
                raise OutOfRangeError(name, score, MIN_ABILITY_SCORE, MAX_ABILITY_SCORE)
        return self

    def score(self, ability: "Ability | str") -> int:
        return getattr(self, Ability.parse(ability).full_name)

    def modifier(self, ability: "Ability | str") -> int:
        return ability_modifier(self.score(ability))


class LegendaryTraits(BaseModel):
    """Legendary action economy."""

    model_config = ConfigDict(frozen=True)

    actions_per_round: int = 3

    @field_validator("actions_per_round")
    @classmethod
    def _check_actions(cls, value: int) -> int:
        if value < 1 or value > 4:
            raise OutOfRangeError("legendary.actions_per_round", value, 1, 4)
        return value


class LairTraits(BaseModel):
    """Lair actions on a fixed initiative count, with optional regional effects."""

    model_config = ConfigDict(frozen=True)

    initiative: int = 20
    regional_effects: bool = False

    @field_validator("initiative")
    @classmethod
    def _check_initiative(cls, value: int) -> int:
        if value < 1 or value > 30:
            raise OutOfRangeError("lair.initiative", value, 1, 30)
        return value


class CasterProfile(BaseModel):
    """How a creature casts spells.

    Standard casters need a caster level, which selects their spell slot
    row. Innate casters cast from a per-day list and need no level.
    """

    model_config = ConfigDict(frozen=True)

    type: CasterType = CasterType.STANDARD
    ability: Ability = Ability.INT
    caster_level: int | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return CasterType(value.strip().lower())
            except ValueError:
                raise ValidationError(
                    f"Unknown spellcasting type: {value!r}", field="spellcasting.type"
                ) from None
        return value

    @field_validator("ability", mode="before")
    @classmethod
    def _parse_ability(cls, value: Any) -> Ability:
        ability = Ability.parse(value)
        if ability not in SPELLCASTING_ABILITIES:
            raise ValidationError(
                f"Spellcasting ability must be int, wis or cha, got {value!r}",
                field="spellcasting.ability",
            )
        return ability

    @model_validator(mode="after")
    def _check_level(self) -> "CasterProfile":
        if self.type is CasterType.STANDARD and self.caster_level is None:
            raise ValidationError(
                "Standard spellcasters require a caster level",
                field="spellcasting.caster_level",
            )
        if self.caster_level is not None and not MIN_LEVEL <= self.caster_level <= MAX_LEVEL:
            raise OutOfRangeError("spellcasting.caster_level", self.caster_level, MIN_LEVEL, MAX_LEVEL)
        return self


class MonsterTactics(BaseModel):
    """Narrative tactics from the generator. Opaque to the engine."""

    model_config = ConfigDict(frozen=True)

    initial_round: str | None = None
    combat_strategy: str | None = None
    if_bloodied: str | None = None
    retreat_condition: str | None = None


class SpellcastingStats(BaseModel):
    """Numbers derived from a CasterProfile and the creature's scores."""

    model_config = ConfigDict(frozen=True)

    type: CasterType
    ability: Ability
    proficiency_bonus: int
    save_dc: int
    attack_bonus: int
    slots: tuple[int, ...] = ()


# =============================================================================
# MonsterProfile
# =============================================================================

def _coerce_damage_types(values: Any, field: str) -> Any:
    """Extract canonical damage types from free-text entries.

    'bludgeoning, piercing, and slashing from nonmagical attacks' yields the
    three physical types. An entry naming no damage type is rejected.
    """
    if values is None:
        return frozenset()
    if isinstance(values, (str, DamageType)):
        values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise ValidationError(
            f"{field} must be a list of damage types, got {type(values).__name__}",
            field=field,
        )
    found: set[DamageType] = set()
    for entry in values:
        if isinstance(entry, DamageType):
            found.add(entry)
            continue
        text = str(entry).lower()
        matched = {dt for dt in DamageType if dt.value in text}
        if not matched:
            raise ValidationError(f"Unknown damage type: {entry!r}", field=field)
        found.update(matched)
    return frozenset(found)


def _coerce_conditions(values: Any) -> Any:
    if values is None:
        return frozenset()
    if isinstance(values, (str, ConditionType)):
        values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise ValidationError(
            f"condition_immunities must be a list of conditions, got {type(values).__name__}",
            field="condition_immunities",
        )
    found: set[ConditionType] = set()
    for entry in values:
        if isinstance(entry, ConditionType):
            found.add(entry)
            continue
        try:
            found.add(ConditionType(str(entry).strip().lower()))
        except ValueError:
            raise ValidationError(
                f"Unknown condition: {entry!r}", field="condition_immunities"
            ) from None
    return frozenset(found)


class MonsterProfile(BaseModel):
    """One roster entry: a creature type and how many of it appear."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Monster name")
    challenge_rating: float = Field(description="Challenge rating (0, 1/8, 1/4, 1/2, 1-30)")
    quantity: int = Field(default=1, description="Number of this monster in the encounter")
    ability_scores: AbilityScores = Field(default_factory=AbilityScores)
    role: str = Field(default="", description="Combat role (striker, controller, tank, minion, ...)")
    creature_type: str | None = Field(default=None, description="Creature type (e.g. undead, beast)")
    resistances: frozenset[DamageType] = frozenset()
    immunities: frozenset[DamageType] = frozenset()
    vulnerabilities: frozenset[DamageType] = frozenset()
    condition_immunities: frozenset[ConditionType] = frozenset()
    legendary: LegendaryTraits | None = None
    lair: LairTraits | None = None
    spellcasting: CasterProfile | None = None
    tactics: MonsterTactics | None = None
    extra: dict[str, Any] = Field(
        default_factory=dict,
        description="Narrative payload from the generator, carried untouched",
    )

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValidationError("Monster name must not be empty", field="name")
        return value

    @field_validator("challenge_rating", mode="before")
    @classmethod
    def _parse_cr(cls, value: Any) -> float:
        return parse_cr(value)

    @field_validator("quantity")
    @classmethod
    def _check_quantity(cls, value: int) -> int:
        if value < 1:
            raise OutOfRangeError("quantity", value, 1)
        return value

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("resistances", "immunities", "vulnerabilities", mode="before")
    @classmethod
    def _parse_damage_types(cls, value: Any, info: ValidationInfo) -> Any:
        return _coerce_damage_types(value, info.field_name)

    @field_validator("condition_immunities", mode="before")
    @classmethod
    def _parse_conditions(cls, value: Any) -> Any:
        return _coerce_conditions(value)

    @model_validator(mode="after")
    def _check_capabilities(self, info: ValidationInfo) -> "MonsterProfile":
        """Legendary needs the CR floor; lair needs legendary and CR 10+."""
        context = info.context or {}
        legendary_floor = context.get("legendary_floor", DEFAULT_CONFIG.legendary_rules_floor)
        lair_floor = context.get("lair_floor", DEFAULT_CONFIG.lair_floor)
        cr = self.challenge_rating

        if self.legendary is not None and cr < legendary_floor:
            raise ValidationError(
                f"{self.name}: legendary actions require CR {format_cr(legendary_floor)}+, "
                f"got CR {format_cr(cr)}",
                field="legendary",
                details={"challenge_rating": cr, "minimum": legendary_floor},
            )
        if self.lair is not None:
            if self.legendary is None:
                raise ValidationError(
                    f"{self.name}: lair actions require a legendary creature",
                    field="lair",
                )
            if cr < lair_floor:
                raise ValidationError(
                    f"{self.name}: lair actions require CR {format_cr(lair_floor)}+, "
                    f"got CR {format_cr(cr)}",
                    field="lair",
                    details={"challenge_rating": cr, "minimum": lair_floor},
                )
        return self

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def cr_label(self) -> str:
        return format_cr(self.challenge_rating)

    @property
    def xp_value(self) -> int:
        """XP for a single creature."""
        return xp_for_cr(self.challenge_rating)

    @property
    def total_xp(self) -> int:
        """Base XP for the whole group (quantity x XP)."""
        return self.quantity * self.xp_value

    @property
    def proficiency_bonus(self) -> int:
        return proficiency_bonus_for_cr(self.challenge_rating)

    @property
    def is_legendary(self) -> bool:
        return self.legendary is not None

    @property
    def has_lair(self) -> bool:
        return self.lair is not None

    @property
    def has_regional_effects(self) -> bool:
        return self.lair is not None and self.lair.regional_effects

    def ability_modifier(self, ability: "Ability | str") -> int:
        return self.ability_scores.modifier(ability)

    def spellcasting_stats(self) -> SpellcastingStats | None:
        """Save DC, attack bonus and slots, or None for non-casters.

        Standard casters use their caster level for proficiency and get the
        full-caster slot row. Innate casters use the CR-based proficiency
        bonus and have no slots.
        """
        caster = self.spellcasting
        if caster is None:
            return None

        modifier = self.ability_modifier(caster.ability)
        if caster.type is CasterType.STANDARD:
            prof = proficiency_bonus(caster.caster_level)
            slots = spell_slots(caster.caster_level)
        else:
            prof = self.proficiency_bonus
            slots = ()

        return SpellcastingStats(
            type=caster.type,
            ability=caster.ability,
            proficiency_bonus=prof,
            save_dc=8 + prof + modifier,
            attack_bonus=prof + modifier,
            slots=slots,
        )

    def with_quantity(self, quantity: int) -> "MonsterProfile":
        """Copy of this profile with a different quantity."""
        if quantity < 1:
            raise OutOfRangeError("quantity", quantity, 1)
        return self.model_copy(update={"quantity": quantity})

    # -------------------------------------------------------------------------
    # Untrusted input
    # -------------------------------------------------------------------------

    @classmethod
    def create(cls, config: ForgeConfig | None = None, **data: Any) -> "MonsterProfile":
        """Build a profile validated against the given config's floors."""
        return cls._validate(data, config or DEFAULT_CONFIG)

    @classmethod
    def from_candidate(
        cls,
        data: dict[str, Any],
        config: ForgeConfig | None = None,
    ) -> "MonsterProfile":
        """Parse an untrusted monster candidate from the content generator.

        Accepts the generator's field names (``cr``, ``abilities``,
        ``isLegendary``, ``hasLair``, ``spellcastingType``, ...) as well as
        this model's own names. Every failure surfaces as ValidationError or
        OutOfRangeError.

        Raises:
            ValidationError: If the candidate is malformed or breaks a rule.
            OutOfRangeError: If a number falls outside its table.
        """
        if not isinstance(data, dict):
            raise ValidationError(
                f"Monster candidate must be a mapping, got {type(data).__name__}",
                field="candidate",
            )
        return cls._validate(_normalize_candidate(data), config or DEFAULT_CONFIG)

    @classmethod
    def _validate(cls, data: dict[str, Any], config: ForgeConfig) -> "MonsterProfile":
        """Validate against config, converting schema errors to ValidationError."""
        try:
            return cls.model_validate(data, context=config.validation_context())
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "candidate"
            logger.debug(f"Monster {data.get('name')!r} failed schema validation on {field}")
            raise ValidationError(
                f"Invalid monster {data.get('name', '<unnamed>')!r}: "
                f"{field}: {first['msg']}",
                field=field,
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from None


# Generator field name -> model field name
_CANDIDATE_ALIASES: dict[str, str] = {
    "cr": "challenge_rating",
    "challengeRating": "challenge_rating",
    "abilities": "ability_scores",
    "abilityScores": "ability_scores",
    "type": "creature_type",
    "monsterType": "creature_type",
    "creatureType": "creature_type",
    "damageResistances": "resistances",
    "damageImmunities": "immunities",
    "damageVulnerabilities": "vulnerabilities",
    "conditionImmunities": "condition_immunities",
}

_MODEL_FIELDS = {
    "name", "challenge_rating", "quantity", "ability_scores", "role",
    "creature_type", "resistances", "immunities", "vulnerabilities",
    "condition_immunities", "legendary", "lair", "spellcasting", "tactics", "extra",
}

_CAPABILITY_FLAGS = {
    "isLegendary", "legendaryActionsPerRound", "hasLair", "lairInitiative",
    "hasRegionalEffects", "isSpellcaster", "spellcastingType",
    "spellcastingAbility", "casterLevel",
}

_TACTICS_ALIASES: dict[str, str] = {
    "initialRound": "initial_round",
    "combatStrategy": "combat_strategy",
    "ifBloodied": "if_bloodied",
    "retreatCondition": "retreat_condition",
}


def _mapping(value: Any, field: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(
            f"{field} must be a mapping, got {type(value).__name__}", field=field
        )
    return dict(value)


def _given(data: dict[str, Any], key: str, default: Any) -> Any:
    """The candidate's value for key, or default when absent or null."""
    value = data.get(key)
    return default if value is None else value


def _normalize_candidate(data: dict[str, Any]) -> dict[str, Any]:
    """Translate a generator payload into MonsterProfile field names."""
    out: dict[str, Any] = {}
    extra = _mapping(data.get("extra"), "extra")
    scores: dict[str, Any] = {}

    for key, value in data.items():
        if key == "extra" or key in _CAPABILITY_FLAGS:
            continue
        target = _CANDIDATE_ALIASES.get(key, key)
        if key.lower() in {a.value for a in Ability}:
            scores[key.lower()] = value
        elif target in _MODEL_FIELDS:
            out[target] = value
        else:
            extra[key] = value

    if scores:
        merged = _mapping(out.get("ability_scores"), "ability_scores")
        merged.update(scores)
        out["ability_scores"] = merged

    # Legendary / lair / regional flags
    legendary_actions = extra.get("legendaryActions")
    if data.get("isLegendary") or "legendaryActionsPerRound" in data or legendary_actions:
        if data.get("isLegendary") is not False:
            out.setdefault(
                "legendary",
                {"actions_per_round": _given(data, "legendaryActionsPerRound", 3)},
            )

    if data.get("hasRegionalEffects") and not data.get("hasLair"):
        raise ValidationError(
            f"{data.get('name', '<unnamed>')}: regional effects require a lair",
            field="regional_effects",
        )
    if data.get("hasLair"):
        out.setdefault(
            "lair",
            {
                "initiative": _given(data, "lairInitiative", 20),
                "regional_effects": bool(data.get("hasRegionalEffects")),
            },
        )

    # Spellcasting: either flat flags or a generator 'spellcasting' block
    spellcasting = out.get("spellcasting")
    if isinstance(spellcasting, dict):
        block = dict(spellcasting)
        if "level" in block and "caster_level" not in block:
            block["caster_level"] = block.pop("level")
        out["spellcasting"] = {
            k: v for k, v in block.items() if k in ("type", "ability", "caster_level")
        }
        if len(block) > len(out["spellcasting"]):
            extra["spellcasting"] = spellcasting
    elif data.get("isSpellcaster"):
        out["spellcasting"] = {
            "type": data.get("spellcastingType") or "standard",
            "ability": data.get("spellcastingAbility") or "int",
            "caster_level": data.get("casterLevel"),
        }

    # Tactics: generator dict or plain prose
    tactics = out.get("tactics")
    if isinstance(tactics, str):
        out["tactics"] = {"combat_strategy": tactics}
    elif isinstance(tactics, dict):
        out["tactics"] = {_TACTICS_ALIASES.get(k, k): v for k, v in tactics.items()}

    if extra:
        out["extra"] = extra
    return out


def roster_names(roster: Iterable[MonsterProfile]) -> list[str]:
    """Names of the roster entries in order."""
    return [monster.name for monster in roster]
