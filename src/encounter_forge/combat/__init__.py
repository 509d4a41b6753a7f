"""
Combat package for encounter-forge.

Provides the 5e rule tables, XP budget calculation and difficulty
classification, the monster capability model, phase planning and the
encounter composer.
"""

# Rule tables
from .rule_tables import (
    CR_TO_XP,
    ENCOUNTER_MULTIPLIERS,
    XP_THRESHOLDS,
    CombatType,
    DifficultyTier,
    count_multiplier,
    format_cr,
    parse_cr,
    spell_slots,
    threshold_for,
    xp_for_cr,
)

# Difficulty engine
from .difficulty import (
    Party,
    ScalingOption,
    XPCalculation,
    classify,
    compute_budget,
    party_thresholds,
    render_xp_summary,
    scaling_options,
)

# Monster capability model
from .monsters import (
    AbilityScores,
    CasterProfile,
    LairTraits,
    LegendaryTraits,
    MonsterProfile,
    can_offer_lair,
    can_offer_legendary,
)

# Phase planning
from .phases import (
    Phase,
    PhaseGraph,
    build_phase_graph,
    validate_phase_graph,
)

# Composer
from .composer import (
    CandidateQuery,
    CandidateSource,
    EncounterComposer,
    EncounterConstraints,
    EncounterRequest,
    EncounterResult,
    compose_encounter,
)

__all__ = [
    "CR_TO_XP",
    "ENCOUNTER_MULTIPLIERS",
    "XP_THRESHOLDS",
    "CombatType",
    "DifficultyTier",
    "count_multiplier",
    "format_cr",
    "parse_cr",
    "spell_slots",
    "threshold_for",
    "xp_for_cr",
    "Party",
    "ScalingOption",
    "XPCalculation",
    "classify",
    "compute_budget",
    "party_thresholds",
    "render_xp_summary",
    "scaling_options",
    "AbilityScores",
    "CasterProfile",
    "LairTraits",
    "LegendaryTraits",
    "MonsterProfile",
    "can_offer_lair",
    "can_offer_legendary",
    "Phase",
    "PhaseGraph",
    "build_phase_graph",
    "validate_phase_graph",
    "CandidateQuery",
    "CandidateSource",
    "EncounterComposer",
    "EncounterConstraints",
    "EncounterRequest",
    "EncounterResult",
    "compose_encounter",
]
