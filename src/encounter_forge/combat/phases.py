"""
Phase graph: the tactical plan of an encounter.

A phase graph is an ordered list of combat phases. Each phase has a trigger
(when it starts), the monsters active during it and a per-monster directive.
The graph is a static plan; tracking the current phase during play is the
caller's business.

Shapes by combat type:
- single: one phase, everything present from the start
- multiple: reinforcement waves on round counts
- dynamic: waves gated by DM-facing free-text conditions
- boss: the boss first, minion waves at boss HP thresholds
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Iterable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config import DEFAULT_CONFIG, ForgeConfig
from ..errors import ValidationError
from .monsters import MonsterProfile
from .rule_tables import CombatType
from .tactics import directive_for

logger = logging.getLogger("encounter-forge.combat")


# =============================================================================
# Triggers
# =============================================================================

class TriggerKind(str, Enum):
    IMMEDIATE = "immediate"
    ROUND_COUNT = "round_count"
    MONSTER_HP_THRESHOLD = "monster_hp_threshold"
    MONSTER_DEFEATED = "monster_defeated"
    FREE_TEXT = "free_text"


class ImmediateTrigger(BaseModel):
    """Phase starts when combat starts. Phase 1 only."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["immediate"] = "immediate"

    @property
    def monster(self) -> str | None:
        return None

    def describe(self) -> str:
        return "Combat begins"


class RoundCountTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["round_count"] = "round_count"
    rounds: int

    @field_validator("rounds")
    @classmethod
    def _check_rounds(cls, value: int) -> int:
        if value < 1:
            raise ValidationError(f"round trigger must be >= 1, got {value}", field="trigger.rounds")
        return value

    @property
    def monster(self) -> str | None:
        return None

    def describe(self) -> str:
        return f"Start of round {self.rounds}"


class MonsterHpThresholdTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["monster_hp_threshold"] = "monster_hp_threshold"
    monster: str
    fraction: float

    @field_validator("fraction")
    @classmethod
    def _check_fraction(cls, value: float) -> float:
        if not 0.0 < value < 1.0:
            raise ValidationError(
                f"HP threshold fraction must be between 0 and 1, got {value}",
                field="trigger.fraction",
            )
        return value

    def describe(self) -> str:
        return f"{self.monster} drops to {self.fraction:.0%} HP"


class MonsterDefeatedTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["monster_defeated"] = "monster_defeated"
    monster: str

    def describe(self) -> str:
        return f"{self.monster} is defeated"


class FreeTextTrigger(BaseModel):
    """DM-facing condition. Never evaluated by the engine."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["free_text"] = "free_text"
    condition: str

    @property
    def monster(self) -> str | None:
        return None

    def describe(self) -> str:
        return self.condition


TriggerSpec = Annotated[
    Union[
        ImmediateTrigger,
        RoundCountTrigger,
        MonsterHpThresholdTrigger,
        MonsterDefeatedTrigger,
        FreeTextTrigger,
    ],
    Field(discriminator="kind"),
]

# Triggers a "multiple" or "boss" phase after the first may use
_CONCRETE_TRIGGERS = {
    TriggerKind.ROUND_COUNT.value,
    TriggerKind.MONSTER_HP_THRESHOLD.value,
    TriggerKind.MONSTER_DEFEATED.value,
}


# =============================================================================
# Phases
# =============================================================================

class EnvironmentalConditions(BaseModel):
    model_config = ConfigDict(frozen=True)

    terrain: str | None = None
    lighting: str | None = None
    weather: str | None = None
    special: str | None = None


class Phase(BaseModel):
    """One stage of the encounter."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(ge=1)
    name: str
    trigger: TriggerSpec
    active_monsters: tuple[str, ...] = Field(description="Roster entries active in this phase")
    removed_monsters: tuple[str, ...] = Field(
        default=(), description="Entries explicitly removed as defeated at the start of this phase"
    )
    tactics: str | None = None
    directives: dict[str, str] = Field(default_factory=dict, description="Per-monster tactical directive")
    environmental: EnvironmentalConditions | None = None

    @model_validator(mode="after")
    def _check_members(self) -> "Phase":
        if len(set(self.active_monsters)) != len(self.active_monsters):
            raise ValidationError(
                f"Phase {self.number}: active monsters must be unique", field="active_monsters"
            )
        overlap = set(self.removed_monsters) & set(self.active_monsters)
        if overlap:
            raise ValidationError(
                f"Phase {self.number}: {sorted(overlap)} both removed and active",
                field="removed_monsters",
            )
        unknown = set(self.directives) - set(self.active_monsters)
        if unknown:
            raise ValidationError(
                f"Phase {self.number}: directives for inactive monsters {sorted(unknown)}",
                field="directives",
            )
        return self


class PhaseGraph(BaseModel):
    """Ordered phases of an encounter plus the boss, if any."""

    model_config = ConfigDict(frozen=True)

    combat_type: CombatType
    phases: tuple[Phase, ...]
    boss: str | None = None

    @model_validator(mode="after")
    def _check_structure(self) -> "PhaseGraph":
        check_phase_structure(self)
        return self

    @property
    def final_phase(self) -> Phase:
        return self.phases[-1]

    def all_monsters(self) -> set[str]:
        names: set[str] = set()
        for phase in self.phases:
            names.update(phase.active_monsters)
        return names


def check_phase_structure(graph: PhaseGraph) -> None:
    """Check the roster-independent invariants of a phase graph.

    Raises:
        ValidationError: On the first violated invariant.
    """
    phases = graph.phases
    combat_type = graph.combat_type
    if not phases:
        raise ValidationError("A phase graph needs at least one phase", field="phases")

    numbers = [phase.number for phase in phases]
    if numbers != list(range(1, len(phases) + 1)):
        raise ValidationError(
            f"Phase numbers must run 1..{len(phases)} without gaps, got {numbers}",
            field="phases.number",
        )

    if combat_type is CombatType.SINGLE and len(phases) != 1:
        raise ValidationError(
            f"Single-wave encounters have exactly one phase, got {len(phases)}", field="phases"
        )

    seen: set[str] = set()
    previous: Phase | None = None
    for phase in phases:
        kind = phase.trigger.kind
        if phase.number == 1:
            if kind != TriggerKind.IMMEDIATE.value:
                raise ValidationError(
                    f"Phase 1 must start immediately, got '{kind}' trigger", field="phases.trigger"
                )
        elif kind == TriggerKind.IMMEDIATE.value:
            raise ValidationError(
                f"Phase {phase.number}: only phase 1 may use an immediate trigger",
                field="phases.trigger",
            )
        elif combat_type is CombatType.DYNAMIC:
            pass
        elif kind not in _CONCRETE_TRIGGERS:
            raise ValidationError(
                f"Phase {phase.number}: {combat_type.value} encounters need a concrete trigger, "
                f"got '{kind}'",
                field="phases.trigger",
            )

        current = set(phase.active_monsters)
        if previous is not None:
            removed = set(phase.removed_monsters)
            not_active = removed - set(previous.active_monsters)
            if not_active:
                raise ValidationError(
                    f"Phase {phase.number}: cannot remove {sorted(not_active)}, not active in "
                    f"phase {previous.number}",
                    field="phases.removed_monsters",
                )
            dropped = set(previous.active_monsters) - removed - current
            if dropped:
                raise ValidationError(
                    f"Phase {phase.number}: {sorted(dropped)} left without being removed",
                    field="phases.active_monsters",
                )

        seen.update(current)
        referenced = getattr(phase.trigger, "monster", None)
        if referenced is not None and referenced not in seen:
            raise ValidationError(
                f"Phase {phase.number}: trigger references {referenced!r}, "
                "which is not present in this or an earlier phase",
                field="phases.trigger",
            )
        previous = phase

    if combat_type is CombatType.BOSS:
        _check_boss_structure(graph)


def _check_boss_structure(graph: PhaseGraph) -> None:
    boss = graph.boss
    if not boss:
        raise ValidationError("Boss encounters must name their boss", field="boss")
    if boss not in graph.phases[0].active_monsters:
        raise ValidationError(f"Boss {boss!r} must be active in phase 1", field="phases.active_monsters")
    if boss not in graph.final_phase.active_monsters:
        raise ValidationError(
            f"Boss {boss!r} must be active in the final phase", field="phases.active_monsters"
        )

    last_fraction = 1.0
    for phase in graph.phases[1:]:
        trigger = phase.trigger
        if trigger.kind != TriggerKind.MONSTER_HP_THRESHOLD.value or trigger.monster != boss:
            raise ValidationError(
                f"Phase {phase.number}: boss phases are triggered by {boss}'s HP thresholds",
                field="phases.trigger",
            )
        if trigger.fraction >= last_fraction:
            raise ValidationError(
                f"Phase {phase.number}: boss HP thresholds must decrease, "
                f"got {trigger.fraction} after {last_fraction}",
                field="phases.trigger",
            )
        last_fraction = trigger.fraction


def validate_phase_graph(graph: PhaseGraph, roster: Iterable[str | MonsterProfile]) -> PhaseGraph:
    """Check a phase graph against the roster it was planned for.

    Every monster named in the graph must be a roster entry, and a
    single-wave graph must field the whole roster.

    Raises:
        ValidationError: If the graph references an unknown monster.
    """
    names = {m.name if isinstance(m, MonsterProfile) else m for m in roster}

    referenced: set[str] = set()
    for phase in graph.phases:
        referenced.update(phase.active_monsters)
        referenced.update(phase.removed_monsters)
        trigger_monster = getattr(phase.trigger, "monster", None)
        if trigger_monster:
            referenced.add(trigger_monster)
    if graph.boss:
        referenced.add(graph.boss)

    unknown = referenced - names
    if unknown:
        raise ValidationError(
            f"Phase graph references monsters not in the roster: {sorted(unknown)}",
            field="phases",
            details={"unknown": sorted(unknown)},
        )

    if graph.combat_type is CombatType.SINGLE and set(graph.phases[0].active_monsters) != names:
        raise ValidationError(
            "Single-wave encounters field the whole roster in their only phase",
            field="phases.active_monsters",
        )
    return graph


# =============================================================================
# Generation
# =============================================================================

def _group_label(monster: MonsterProfile) -> str:
    return f"{monster.quantity}x {monster.name}" if monster.quantity > 1 else monster.name


def _directives(active: list[MonsterProfile], boss: str | None = None, fraction: float | None = None) -> dict[str, str]:
    return {
        monster.name: directive_for(
            monster,
            is_boss=monster.name == boss,
            boss_hp_fraction=fraction if monster.name == boss else None,
        )
        for monster in active
    }


def select_boss(roster: list[MonsterProfile]) -> MonsterProfile:
    """Pick the boss of a roster and check it stands above its minions.

    The boss is the single creature with the highest CR; every other entry
    must have a strictly lower CR.

    Raises:
        ValidationError: If no entry qualifies as a boss.
    """
    boss = max(roster, key=lambda m: (m.challenge_rating, -m.quantity))
    if boss.quantity != 1:
        raise ValidationError(
            f"Boss {boss.name!r} must be a single creature, got quantity {boss.quantity}",
            field="roster",
        )
    rivals = [m.name for m in roster if m is not boss and m.challenge_rating >= boss.challenge_rating]
    if rivals:
        raise ValidationError(
            f"Boss {boss.name!r} (CR {boss.cr_label}) must outrank every minion; "
            f"rivals: {rivals}",
            field="roster",
        )
    return boss


def build_phase_graph(
    combat_type: CombatType | str,
    roster: Iterable[MonsterProfile],
    config: ForgeConfig | None = None,
    environment: str | None = None,
) -> PhaseGraph:
    """Generate the phase plan for a roster.

    Args:
        combat_type: Structure of the fight.
        roster: Validated roster entries.
        config: Forge settings (boss HP fractions, wave interval).
        environment: Optional terrain label attached to the opening phase.

    Raises:
        ValidationError: For an empty roster or a boss roster without a
            clear boss.
    """
    config = config or DEFAULT_CONFIG
    combat_type = CombatType(combat_type)
    entries = list(roster)
    if not entries:
        raise ValidationError("Cannot plan phases for an empty roster", field="roster")

    opening_env = EnvironmentalConditions(terrain=environment) if environment else None

    if combat_type is CombatType.SINGLE:
        graph = PhaseGraph(
            combat_type=combat_type,
            phases=(Phase(
                number=1,
                name="Engagement",
                trigger=ImmediateTrigger(),
                active_monsters=tuple(m.name for m in entries),
                tactics=f"All enemies are present at the start: {', '.join(_group_label(m) for m in entries)}",
                directives=_directives(entries),
                environmental=opening_env,
            ),),
        )
    elif combat_type is CombatType.BOSS:
        graph = _build_boss_graph(entries, config, opening_env)
    else:
        graph = _build_wave_graph(combat_type, entries, config, opening_env)

    logger.debug(f"Planned {len(graph.phases)} {combat_type.value} phase(s)")
    return validate_phase_graph(graph, entries)


def _build_wave_graph(
    combat_type: CombatType,
    entries: list[MonsterProfile],
    config: ForgeConfig,
    opening_env: EnvironmentalConditions | None,
) -> PhaseGraph:
    """One wave per roster entry, weakest first."""
    waves = sorted(entries, key=lambda m: m.xp_value)
    phases: list[Phase] = []
    active: list[MonsterProfile] = []

    for number, monster in enumerate(waves, start=1):
        active.append(monster)
        if number == 1:
            trigger = ImmediateTrigger()
            name = "Opening Wave"
            tactics = f"{_group_label(monster)} engage first"
        elif combat_type is CombatType.MULTIPLE:
            trigger = RoundCountTrigger(rounds=1 + config.wave_round_interval * (number - 1))
            name = f"Wave {number}"
            tactics = f"{_group_label(monster)} arrive as reinforcements"
        else:
            trigger = FreeTextTrigger(
                condition=f"When the fight turns against the defenders or an alarm is raised, "
                          f"{_group_label(monster)} join the battle"
            )
            name = f"Complication {number - 1}"
            tactics = f"{_group_label(monster)} enter when the DM judges the moment right"

        phases.append(Phase(
            number=number,
            name=name,
            trigger=trigger,
            active_monsters=tuple(m.name for m in active),
            tactics=tactics,
            directives=_directives(active),
            environmental=opening_env if number == 1 else None,
        ))

    return PhaseGraph(combat_type=combat_type, phases=tuple(phases))


def _build_boss_graph(
    entries: list[MonsterProfile],
    config: ForgeConfig,
    opening_env: EnvironmentalConditions | None,
) -> PhaseGraph:
    """Boss first; minion waves at the boss's HP thresholds."""
    boss = select_boss(entries)
    minions = [m for m in entries if m is not boss]
    fractions = config.boss_hp_fractions

    # More minion groups than thresholds: the surplus starts beside the boss
    surplus = max(0, len(minions) - len(fractions))
    opening = [boss] + minions[:surplus]
    waves = minions[surplus:]

    phases = [Phase(
        number=1,
        name=f"{boss.name} Holds Court",
        trigger=ImmediateTrigger(),
        active_monsters=tuple(m.name for m in opening),
        tactics=f"{boss.name} opens the fight"
                + (f" with {', '.join(_group_label(m) for m in opening[1:])}" if len(opening) > 1 else " alone"),
        directives=_directives(opening, boss.name),
        environmental=opening_env,
    )]

    active = list(opening)
    if waves:
        for index, minion in enumerate(waves):
            fraction = fractions[index]
            active.append(minion)
            phases.append(Phase(
                number=len(phases) + 1,
                name=f"Reinforcements ({fraction:.0%})",
                trigger=MonsterHpThresholdTrigger(monster=boss.name, fraction=fraction),
                active_monsters=tuple(m.name for m in active),
                tactics=f"{boss.name} calls {_group_label(minion)} to its side",
                directives=_directives(active, boss.name, fraction),
            ))
    else:
        fraction = fractions[len(fractions) // 2]
        phases.append(Phase(
            number=2,
            name="Desperation",
            trigger=MonsterHpThresholdTrigger(monster=boss.name, fraction=fraction),
            active_monsters=(boss.name,),
            tactics=f"{boss.name} fights with everything it has left",
            directives=_directives([boss], boss.name, fraction),
        ))

    return PhaseGraph(combat_type=CombatType.BOSS, phases=tuple(phases), boss=boss.name)
