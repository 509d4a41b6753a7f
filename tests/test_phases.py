"""
Tests for phase graphs.

Covers generated plans for each combat type, the structural invariants
enforced on hand-built graphs, roster checks, boss selection and the
tactical directives attached to each phase.
"""

import pytest

from encounter_forge.config import ForgeConfig
from encounter_forge.errors import ValidationError
from encounter_forge.combat.monsters import MonsterProfile
from encounter_forge.combat.phases import (
    FreeTextTrigger,
    ImmediateTrigger,
    MonsterDefeatedTrigger,
    MonsterHpThresholdTrigger,
    Phase,
    PhaseGraph,
    RoundCountTrigger,
    build_phase_graph,
    select_boss,
    validate_phase_graph,
)
from encounter_forge.combat.rule_tables import CombatType
from encounter_forge.combat.tactics import (
    DEFAULT_DIRECTIVE,
    ROLE_DIRECTIVES,
    MonsterRole,
    directive_for,
    parse_role,
)


@pytest.fixture
def warband():
    """A goblin warband: boss, archers and a pack of wolves."""
    return [
        MonsterProfile(name="Goblin Boss", challenge_rating=1, role="leader"),
        MonsterProfile(name="Goblin Archer", challenge_rating="1/4", quantity=3, role="artillery"),
        MonsterProfile(name="Wolf", challenge_rating="1/4", quantity=2, role="skirmisher"),
    ]


def _phase(number, trigger, active, **kwargs):
    return Phase(number=number, name=f"Phase {number}", trigger=trigger, active_monsters=tuple(active), **kwargs)


# =============================================================================
# Generated graphs
# =============================================================================

class TestBuildPhaseGraph:
    """Tests for the generated plan per combat type."""

    def test_single(self, warband):
        graph = build_phase_graph(CombatType.SINGLE, warband, environment="forest")
        assert len(graph.phases) == 1
        phase = graph.phases[0]
        assert phase.trigger.kind == "immediate"
        assert set(phase.active_monsters) == {"Goblin Boss", "Goblin Archer", "Wolf"}
        assert phase.environmental.terrain == "forest"
        assert "3x Goblin Archer" in phase.tactics

    def test_multiple_waves_weakest_first(self, warband):
        graph = build_phase_graph("multiple", warband)
        assert [phase.number for phase in graph.phases] == [1, 2, 3]
        assert graph.phases[0].active_monsters[0] in ("Goblin Archer", "Wolf")
        assert graph.final_phase.active_monsters[-1] == "Goblin Boss"
        assert [phase.trigger.rounds for phase in graph.phases[1:]] == [3, 5]

    def test_multiple_membership_accumulates(self, warband):
        graph = build_phase_graph(CombatType.MULTIPLE, warband)
        for earlier, later in zip(graph.phases, graph.phases[1:]):
            assert set(earlier.active_monsters) <= set(later.active_monsters)

    def test_wave_interval_is_configurable(self, warband):
        graph = build_phase_graph(CombatType.MULTIPLE, warband, ForgeConfig(wave_round_interval=3))
        assert [phase.trigger.rounds for phase in graph.phases[1:]] == [4, 7]

    def test_dynamic_uses_free_text(self, warband):
        graph = build_phase_graph(CombatType.DYNAMIC, warband)
        assert graph.phases[0].trigger.kind == "immediate"
        assert all(phase.trigger.kind == "free_text" for phase in graph.phases[1:])
        assert graph.phases[1].name == "Complication 1"

    def test_boss_with_minions(self, warband):
        graph = build_phase_graph(CombatType.BOSS, warband)
        assert graph.boss == "Goblin Boss"
        assert graph.phases[0].active_monsters == ("Goblin Boss",)
        fractions = [phase.trigger.fraction for phase in graph.phases[1:]]
        assert fractions == [0.75, 0.5]
        assert all(phase.trigger.monster == "Goblin Boss" for phase in graph.phases[1:])
        assert "Goblin Boss" in graph.final_phase.active_monsters
        assert graph.phases[1].name == "Reinforcements (75%)"

    def test_lone_boss_gets_desperation_phase(self, adult_dragon):
        graph = build_phase_graph(CombatType.BOSS, [adult_dragon])
        assert len(graph.phases) == 2
        assert graph.phases[1].name == "Desperation"
        assert graph.phases[1].trigger.fraction == 0.5
        assert graph.final_phase.active_monsters == ("Adult Red Dragon",)

    def test_surplus_minions_open_with_boss(self):
        roster = [MonsterProfile(name="Hobgoblin Warlord", challenge_rating=6)] + [
            MonsterProfile(name=f"Squad {i}", challenge_rating="1/2") for i in range(5)
        ]
        graph = build_phase_graph(CombatType.BOSS, roster)
        assert len(graph.phases) == 4
        assert len(graph.phases[0].active_monsters) == 3
        assert set(graph.final_phase.active_monsters) == graph.all_monsters()

    def test_empty_roster(self):
        with pytest.raises(ValidationError, match="empty roster"):
            build_phase_graph(CombatType.SINGLE, [])

    def test_every_phase_has_directives(self, warband):
        graph = build_phase_graph(CombatType.MULTIPLE, warband)
        for phase in graph.phases:
            assert set(phase.directives) == set(phase.active_monsters)


# =============================================================================
# Structural invariants
# =============================================================================

class TestPhaseStructure:
    """Hand-built graphs that break an invariant are rejected."""

    def test_numbering_gap(self):
        with pytest.raises(ValidationError, match="without gaps"):
            PhaseGraph(combat_type=CombatType.MULTIPLE, phases=(
                _phase(1, ImmediateTrigger(), ["A"]),
                _phase(3, RoundCountTrigger(rounds=3), ["A", "B"]),
            ))

    def test_single_needs_one_phase(self):
        with pytest.raises(ValidationError, match="exactly one phase"):
            PhaseGraph(combat_type=CombatType.SINGLE, phases=(
                _phase(1, ImmediateTrigger(), ["A"]),
                _phase(2, RoundCountTrigger(rounds=2), ["A", "B"]),
            ))

    def test_first_phase_must_be_immediate(self):
        with pytest.raises(ValidationError, match="start immediately"):
            PhaseGraph(combat_type=CombatType.MULTIPLE, phases=(
                _phase(1, RoundCountTrigger(rounds=1), ["A"]),
            ))

    def test_immediate_only_in_phase_one(self):
        with pytest.raises(ValidationError, match="only phase 1"):
            PhaseGraph(combat_type=CombatType.DYNAMIC, phases=(
                _phase(1, ImmediateTrigger(), ["A"]),
                _phase(2, ImmediateTrigger(), ["A", "B"]),
            ))

    def test_free_text_not_allowed_in_multiple(self):
        with pytest.raises(ValidationError, match="concrete trigger"):
            PhaseGraph(combat_type=CombatType.MULTIPLE, phases=(
                _phase(1, ImmediateTrigger(), ["A"]),
                _phase(2, FreeTextTrigger(condition="When it feels right"), ["A", "B"]),
            ))

    def test_trigger_monster_must_be_present(self):
        with pytest.raises(ValidationError, match="not present"):
            PhaseGraph(combat_type=CombatType.MULTIPLE, phases=(
                _phase(1, ImmediateTrigger(), ["A"]),
                _phase(2, MonsterDefeatedTrigger(monster="C"), ["A", "B"]),
            ))

    def test_monsters_cannot_silently_leave(self):
        with pytest.raises(ValidationError, match="without being removed"):
            PhaseGraph(combat_type=CombatType.MULTIPLE, phases=(
                _phase(1, ImmediateTrigger(), ["A", "B"]),
                _phase(2, RoundCountTrigger(rounds=3), ["B", "C"]),
            ))

    def test_explicit_removal(self):
        graph = PhaseGraph(combat_type=CombatType.MULTIPLE, phases=(
            _phase(1, ImmediateTrigger(), ["A", "B"]),
            _phase(2, MonsterDefeatedTrigger(monster="A"), ["B", "C"], removed_monsters=("A",)),
        ))
        assert graph.final_phase.active_monsters == ("B", "C")

    def test_cannot_remove_inactive(self):
        with pytest.raises(ValidationError, match="cannot remove"):
            PhaseGraph(combat_type=CombatType.MULTIPLE, phases=(
                _phase(1, ImmediateTrigger(), ["A"]),
                _phase(2, RoundCountTrigger(rounds=3), ["A", "B"], removed_monsters=("Z",)),
            ))

    def test_duplicate_active_monsters(self):
        with pytest.raises(ValidationError, match="unique"):
            _phase(1, ImmediateTrigger(), ["A", "A"])

    def test_boss_must_be_named(self):
        with pytest.raises(ValidationError, match="name their boss"):
            PhaseGraph(combat_type=CombatType.BOSS, phases=(_phase(1, ImmediateTrigger(), ["Lich"]),))

    def test_boss_must_be_in_final_phase(self):
        with pytest.raises(ValidationError, match="final phase"):
            PhaseGraph(combat_type=CombatType.BOSS, boss="Lich", phases=(
                _phase(1, ImmediateTrigger(), ["Lich"]),
                _phase(
                    2, MonsterHpThresholdTrigger(monster="Lich", fraction=0.5), ["Skeleton"],
                    removed_monsters=("Lich",),
                ),
            ))

    def test_boss_thresholds_must_decrease(self):
        with pytest.raises(ValidationError, match="must decrease"):
            PhaseGraph(combat_type=CombatType.BOSS, boss="Lich", phases=(
                _phase(1, ImmediateTrigger(), ["Lich"]),
                _phase(2, MonsterHpThresholdTrigger(monster="Lich", fraction=0.5), ["Lich", "A"]),
                _phase(3, MonsterHpThresholdTrigger(monster="Lich", fraction=0.75), ["Lich", "A", "B"]),
            ))

    def test_boss_phases_triggered_by_boss_hp(self):
        with pytest.raises(ValidationError, match="HP thresholds"):
            PhaseGraph(combat_type=CombatType.BOSS, boss="Lich", phases=(
                _phase(1, ImmediateTrigger(), ["Lich"]),
                _phase(2, RoundCountTrigger(rounds=3), ["Lich", "A"]),
            ))

    @pytest.mark.parametrize("fraction", [0.0, 1.0, 1.5])
    def test_hp_fraction_range(self, fraction):
        with pytest.raises(ValidationError):
            MonsterHpThresholdTrigger(monster="Lich", fraction=fraction)

    def test_round_trigger_positive(self):
        with pytest.raises(ValidationError):
            RoundCountTrigger(rounds=0)

    def test_trigger_from_dict(self):
        phase = Phase(
            number=1, name="Start", trigger={"kind": "immediate"}, active_monsters=("A",),
        )
        assert isinstance(phase.trigger, ImmediateTrigger)


# =============================================================================
# Roster checks and boss selection
# =============================================================================

class TestRosterChecks:
    def test_unknown_monster(self, warband):
        graph = PhaseGraph(combat_type=CombatType.SINGLE, phases=(
            _phase(1, ImmediateTrigger(), ["Goblin Boss", "Owlbear"]),
        ))
        with pytest.raises(ValidationError, match="not in the roster") as exc_info:
            validate_phase_graph(graph, warband)
        assert exc_info.value.details["unknown"] == ["Owlbear"]

    def test_single_must_field_everyone(self, warband):
        graph = PhaseGraph(combat_type=CombatType.SINGLE, phases=(
            _phase(1, ImmediateTrigger(), ["Goblin Boss"]),
        ))
        with pytest.raises(ValidationError, match="whole roster"):
            validate_phase_graph(graph, warband)

    def test_accepts_names(self):
        graph = PhaseGraph(combat_type=CombatType.SINGLE, phases=(_phase(1, ImmediateTrigger(), ["A"]),))
        assert validate_phase_graph(graph, ["A"]) is graph


class TestSelectBoss:
    def test_highest_cr(self, warband):
        assert select_boss(warband).name == "Goblin Boss"

    def test_boss_must_be_single(self):
        roster = [MonsterProfile(name="Troll", challenge_rating=5, quantity=2)]
        with pytest.raises(ValidationError, match="single creature"):
            select_boss(roster)

    def test_boss_must_outrank(self):
        roster = [
            MonsterProfile(name="Ogre", challenge_rating=2),
            MonsterProfile(name="Ogre Brute", challenge_rating=2),
        ]
        with pytest.raises(ValidationError, match="outrank"):
            select_boss(roster)


# =============================================================================
# Directives
# =============================================================================

class TestDirectives:
    def test_parse_role(self):
        assert parse_role("Striker") is MonsterRole.STRIKER
        assert parse_role("pack skirmisher") is MonsterRole.SKIRMISHER
        assert parse_role("brute") is None
        assert parse_role(None) is None

    def test_role_directive(self, warband):
        assert directive_for(warband[1]) == ROLE_DIRECTIVES[MonsterRole.ARTILLERY]

    def test_unknown_role_gets_default(self, ogres):
        assert directive_for(ogres) == DEFAULT_DIRECTIVE

    def test_tactics_are_appended(self):
        wolf = MonsterProfile(
            name="Wolf", challenge_rating="1/4", role="skirmisher",
            tactics={"combat_strategy": "Knock targets prone"},
        )
        assert directive_for(wolf).endswith("Knock targets prone")

    def test_boss_escalation(self, adult_dragon):
        calm = directive_for(adult_dragon, is_boss=True)
        bloodied = directive_for(adult_dragon, is_boss=True, boss_hp_fraction=0.5)
        desperate = directive_for(adult_dragon, is_boss=True, boss_hp_fraction=0.25)
        assert calm.startswith(ROLE_DIRECTIVES[MonsterRole.BOSS])
        assert bloodied.startswith("Bloodied")
        assert desperate.startswith("Desperate")
        assert "3 legendary actions" in calm
        assert "initiative 20" in calm
