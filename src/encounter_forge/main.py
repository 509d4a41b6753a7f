"""
Encounter Forge MCP Server
D&D 5e encounter budgeting, classification and composition exposed as FastMCP tools.
"""

import logging
from typing import Annotated, Any, Literal

from dotenv import load_dotenv
from fastmcp import FastMCP
from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from .config import load_config
from .errors import BudgetUnsatisfiableError, EncounterForgeError
from .combat.composer import (
    CandidateQuery,
    EncounterComposer,
    EncounterConstraints,
    EncounterRequest,
    EncounterResult,
)
from .combat.difficulty import Party, XPCalculation, classify, compute_budget, party_thresholds
from .combat.monsters import MonsterProfile, can_offer_lair, can_offer_legendary
from .combat.rule_tables import DifficultyTier

logger = logging.getLogger("encounter-forge")

if not load_dotenv():
    logger.debug(".env file not found, using process environment only")

config = load_config()

logging.basicConfig(
    level=config.log_level,
    )

mcp = FastMCP(
    name="encounter-forge"
)

logger.debug("✅ Server initialized, registering tools")


class _StaticCandidates:
    """Candidate source over a fixed list supplied by the caller."""

    def __init__(self, candidates: list[dict[str, Any]]) -> None:
        self.candidates = candidates

    def fetch_candidates(self, query: CandidateQuery) -> list[dict[str, Any]]:
        logger.debug(
            f"Serving {len(self.candidates)} supplied candidates for CR "
            f"{query.challenge_rating_range[0]}-{query.challenge_rating_range[1]}"
        )
        return list(self.candidates)


def _build_party(party_size: int, party_level: int, member_levels: list[int] | None) -> Party:
    if member_levels:
        return Party.from_levels(member_levels)
    return Party.of(party_size, party_level)


# ----------------------------------------------------------------------
# Formatting
# ----------------------------------------------------------------------

def _format_thresholds(thresholds: dict[DifficultyTier, int]) -> str:
    return " | ".join(f"{tier.value.capitalize()} {value:,}" for tier, value in thresholds.items())


def _format_budget(party: Party, tier: DifficultyTier, budget: int, thresholds: dict[DifficultyTier, int]) -> str:
    """Format an XP budget with the party's full threshold table."""
    return "\n".join([
        f"**XP Budget** ({tier.value.upper()})",
        f"Party: {party.size} characters (levels {party.levels()})",
        f"Budget: {budget:,} XP",
        f"Thresholds: {_format_thresholds(thresholds)}",
    ])


def _format_xp_calculation(calc: XPCalculation, roster: list[MonsterProfile] | None = None) -> str:
    """Format an XPCalculation into a human-readable chat string."""
    lines = [f"**Encounter Difficulty: {calc.difficulty.value.upper()}**"]
    for monster in roster or []:
        lines.append(
            f"  - {monster.quantity}x {monster.name} "
            f"(CR {monster.cr_label}, {monster.xp_value:,} XP each)"
        )
    lines.append(
        f"Total: {calc.monster_count} monsters, {calc.base_xp:,} base XP "
        f"x{calc.multiplier:g} = {calc.adjusted_xp:,} adjusted XP"
    )
    lines.append(f"Thresholds: {_format_thresholds(calc.thresholds)}")
    return "\n".join(lines)


def _format_encounter_result(result: EncounterResult) -> str:
    """Format a composed encounter: roster, phases, XP math and notes."""
    lines = [
        f"**Encounter Forge** ({result.combat_type.value}, requested {result.requested_difficulty.value.upper()})",
        f"Party: {result.party.size} characters (levels {result.party.levels()})",
        f"XP Budget: {result.budget:,}",
        "",
        _format_xp_calculation(result.xp_calculation, list(result.roster)),
        "",
    ]

    if result.phases.boss:
        lines.append(f"Boss: {result.phases.boss}")
    for phase in result.phases.phases:
        lines.append(f"**Phase {phase.number}: {phase.name}** ({phase.trigger.describe()})")
        if phase.tactics:
            lines.append(f"  {phase.tactics}")
        for name, directive in phase.directives.items():
            lines.append(f"  - {name}: {directive}")
    lines.append("")

    if result.scaling:
        lines.append("Scaling:")
        for option in result.scaling:
            lines.append(
                f"  - {option.description}: {option.adjusted_xp:,} XP ({option.difficulty.value})"
            )
        lines.append("")

    for rejected in result.rejected_candidates:
        lines.append(f"Rejected: {rejected.name} - {rejected.reason}")
    for note in result.notes:
        lines.append(f"Note: {note}")

    return "\n".join(lines).rstrip()


def _format_monster_profile(monster: MonsterProfile) -> str:
    """Format a validated MonsterProfile with its derived numbers."""
    lines = [
        f"**{monster.name}** (CR {monster.cr_label}, {monster.xp_value:,} XP)",
        f"Proficiency Bonus: +{monster.proficiency_bonus}",
    ]
    if monster.creature_type:
        lines.append(f"Type: {monster.creature_type}")
    if monster.role:
        lines.append(f"Role: {monster.role}")

    scores = monster.ability_scores
    lines.append(
        "Abilities: " + ", ".join(
            f"{ability.upper()} {scores.score(ability)} ({monster.ability_modifier(ability):+d})"
            for ability in ("str", "dex", "con", "int", "wis", "cha")
        )
    )

    for label, values in (
        ("Resistances", monster.resistances),
        ("Immunities", monster.immunities),
        ("Vulnerabilities", monster.vulnerabilities),
        ("Condition Immunities", monster.condition_immunities),
    ):
        if values:
            lines.append(f"{label}: {', '.join(sorted(v.value for v in values))}")

    if monster.legendary:
        lines.append(f"Legendary: {monster.legendary.actions_per_round} actions per round")
    elif can_offer_legendary(monster.challenge_rating, config):
        lines.append("Can become legendary")
    if monster.lair:
        regional = ", regional effects" if monster.lair.regional_effects else ""
        lines.append(f"Lair: actions on initiative {monster.lair.initiative}{regional}")
    elif can_offer_lair(monster.challenge_rating, monster.is_legendary, config):
        lines.append("Can have a lair")

    stats = monster.spellcasting_stats()
    if stats:
        lines.append(
            f"Spellcasting ({stats.type.value}, {stats.ability.full_name}): "
            f"save DC {stats.save_dc}, +{stats.attack_bonus} to hit"
        )
        if stats.slots:
            lines.append(
                "Slots: " + ", ".join(f"L{level} {count}" for level, count in enumerate(stats.slots, 1) if count)
            )

    return "\n".join(lines)


def _format_error(e: Exception) -> str:
    if isinstance(e, BudgetUnsatisfiableError):
        return (
            f"Error: {e.message} (short by {e.shortfall:,} XP, over by {e.excess:,} XP)"
        )
    if isinstance(e, EncounterForgeError):
        return f"Error: {e.message}"
    return f"Error: {e}"


# ----------------------------------------------------------------------
# Tools
# ----------------------------------------------------------------------

@mcp.tool
def calculate_encounter_budget(
    party_size: Annotated[int, Field(description="Number of party members", ge=1)],
    party_level: Annotated[int, Field(description="Average party level", ge=1, le=20)],
    difficulty: Annotated[str, Field(description="Encounter difficulty: 'trivial', 'easy', 'medium', 'hard', 'deadly'")] = "medium",
    member_levels: Annotated[list[int] | None, Field(description="Individual character levels; overrides size and level")] = None,
) -> str:
    """Return the XP budget for an encounter of the given difficulty, plus the party's thresholds."""
    try:
        party = _build_party(party_size, party_level, member_levels)
        tier = DifficultyTier.parse(difficulty)
        budget = compute_budget(party, tier, config)
        return _format_budget(party, tier, budget, party_thresholds(party, config))
    except (EncounterForgeError, PydanticValidationError) as e:
        return _format_error(e)


@mcp.tool
def classify_encounter(
    party_size: Annotated[int, Field(description="Number of party members", ge=1)],
    party_level: Annotated[int, Field(description="Average party level", ge=1, le=20)],
    monsters: Annotated[list[dict[str, Any]], Field(description="Roster entries, e.g. [{'name': 'Ogre', 'cr': 2, 'quantity': 3}]")],
    member_levels: Annotated[list[int] | None, Field(description="Individual character levels; overrides size and level")] = None,
) -> str:
    """Classify an existing roster: base XP, multiplier, adjusted XP and difficulty (DMG Chapter 3)."""
    try:
        party = _build_party(party_size, party_level, member_levels)
        roster = [MonsterProfile.from_candidate(entry, config) for entry in monsters]
        return _format_xp_calculation(classify(party, roster, config), roster)
    except (EncounterForgeError, PydanticValidationError) as e:
        return _format_error(e)


@mcp.tool
def compose_encounter(
    party_size: Annotated[int, Field(description="Number of party members", ge=1)],
    party_level: Annotated[int, Field(description="Average party level", ge=1, le=20)],
    difficulty: Annotated[str, Field(description="Encounter difficulty: 'trivial', 'easy', 'medium', 'hard', 'deadly'")] = "medium",
    combat_type: Annotated[Literal["single", "multiple", "dynamic", "boss"], Field(description="Combat structure")] = "single",
    creature_type: Annotated[str | None, Field(description="Optional creature type filter (e.g., 'undead', 'beast')")] = None,
    environment: Annotated[str | None, Field(description="Optional environment (e.g., 'forest', 'cave')")] = None,
    min_cr: Annotated[float, Field(description="Minimum challenge rating", ge=0, le=30)] = 0,
    max_cr: Annotated[float, Field(description="Maximum challenge rating", ge=0, le=30)] = 30,
    named_monsters: Annotated[list[dict[str, Any]] | None, Field(description="Monsters the encounter must use")] = None,
    candidates: Annotated[list[dict[str, Any]] | None, Field(description="Generated monster stat blocks to choose from")] = None,
    surprise_me: Annotated[bool, Field(description="Ignore candidates and build from CR placeholders")] = False,
    member_levels: Annotated[list[int] | None, Field(description="Individual character levels; overrides size and level")] = None,
) -> str:
    """Compose a balanced encounter with roster, phase plan and XP breakdown.

    Uses the D&D 5e encounter building rules (DMG Chapter 3). The computed
    difficulty is authoritative; when it differs from the requested one a
    note says so.
    """
    try:
        request = EncounterRequest(
            party=_build_party(party_size, party_level, member_levels),
            tier=difficulty,
            combat_type=combat_type,
            constraints=EncounterConstraints(
                monster_type=creature_type,
                environment=environment,
                named_monsters=tuple(
                    MonsterProfile.from_candidate(entry, config) for entry in named_monsters or []
                ),
                min_cr=min_cr,
                max_cr=max_cr,
            ),
            surprise_me=surprise_me,
        )
        source = _StaticCandidates(candidates) if candidates else None
        result = EncounterComposer(config, source).compose(request)
        return _format_encounter_result(result)
    except (EncounterForgeError, PydanticValidationError) as e:
        return _format_error(e)


@mcp.tool
def validate_monster(
    monster: Annotated[dict[str, Any], Field(description="Monster stat block (name, cr, abilities, isLegendary, hasLair, spellcasting, ...)")],
) -> str:
    """Validate a monster's capability profile and report its derived numbers."""
    try:
        return _format_monster_profile(MonsterProfile.from_candidate(monster, config))
    except EncounterForgeError as e:
        return _format_error(e)


logger.debug("✅ All tools successfully registered. Encounter Forge server running! 🎲")

def main() -> None:
    """Main entry point for the Encounter Forge MCP Server."""
    mcp.run()

if __name__ == "__main__":
    main()
