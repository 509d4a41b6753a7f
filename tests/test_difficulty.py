"""
Tests for the difficulty engine.

Covers party construction, party thresholds and budgets, roster
classification, the budget round-trip, scaling options and the XP summary.
"""

import pytest

from encounter_forge.config import ForgeConfig
from encounter_forge.errors import OutOfRangeError, ValidationError
from encounter_forge.combat.difficulty import (
    Party,
    classify,
    classify_xp,
    compute_budget,
    party_thresholds,
    render_xp_summary,
    scaling_options,
)
from encounter_forge.combat.monsters import MonsterProfile
from encounter_forge.combat.rule_tables import DifficultyTier


def _monster(name, cr, quantity=1):
    return MonsterProfile(name=name, challenge_rating=cr, quantity=quantity)


# =============================================================================
# Party
# =============================================================================

class TestParty:
    """Tests for Party construction and validation."""

    def test_of(self):
        party = Party.of(4, 5)
        assert party.size == 4
        assert party.average_level == 5
        assert party.levels() == [5, 5, 5, 5]

    def test_from_levels_derives_size_and_average(self):
        party = Party.from_levels([5, 5, 4, 3])
        assert party.size == 4
        assert party.average_level == 4
        assert party.levels() == [5, 5, 4, 3]

    def test_size_mismatch(self):
        with pytest.raises(ValidationError, match="does not match"):
            Party(size=3, member_levels=(1, 2))

    def test_empty_member_levels(self):
        with pytest.raises(ValidationError):
            Party.from_levels([])

    def test_size_below_one(self):
        with pytest.raises(OutOfRangeError) as exc_info:
            Party.of(0, 5)
        assert exc_info.value.field == "party_size"

    @pytest.mark.parametrize("level", [0, 21])
    def test_level_out_of_range(self, level):
        with pytest.raises(OutOfRangeError):
            Party.of(4, level)

    def test_member_level_out_of_range(self):
        with pytest.raises(OutOfRangeError):
            Party.from_levels([5, 25])

    def test_party_is_frozen(self):
        party = Party.of(4, 5)
        with pytest.raises(Exception):
            party.size = 5


# =============================================================================
# Thresholds and budget
# =============================================================================

class TestBudget:
    """Tests for party thresholds and XP budgets."""

    def test_party_thresholds(self, party_of_four):
        thresholds = party_thresholds(party_of_four)
        assert thresholds == {
            DifficultyTier.TRIVIAL: 500,
            DifficultyTier.EASY: 1000,
            DifficultyTier.MEDIUM: 2000,
            DifficultyTier.HARD: 3000,
            DifficultyTier.DEADLY: 4400,
        }

    def test_thresholds_sum_mixed_levels(self):
        thresholds = party_thresholds(Party.from_levels([1, 2, 3, 4]))
        assert thresholds[DifficultyTier.EASY] == 25 + 50 + 75 + 125
        assert thresholds[DifficultyTier.DEADLY] == 100 + 200 + 400 + 500

    def test_trivial_fraction_is_configurable(self, party_of_four):
        thresholds = party_thresholds(party_of_four, ForgeConfig(trivial_fraction=0.4))
        assert thresholds[DifficultyTier.TRIVIAL] == 400

    def test_compute_budget(self, party_of_four):
        assert compute_budget(party_of_four, "medium") == 2000
        assert compute_budget(party_of_four, "HARD") == 3000
        assert compute_budget(party_of_four, DifficultyTier.TRIVIAL) == 500

    def test_compute_budget_unknown_tier(self, party_of_four):
        with pytest.raises(OutOfRangeError):
            compute_budget(party_of_four, "legendary")


# =============================================================================
# Classification
# =============================================================================

class TestClassify:
    """Tests for roster classification."""

    def test_three_ogres(self, party_of_four, ogres):
        """3 CR 2 ogres: 1,350 base x2 = 2,700 adjusted, medium for 4 x L5."""
        calc = classify(party_of_four, [ogres])
        assert calc.base_xp == 1350
        assert calc.monster_count == 3
        assert calc.multiplier == 2.0
        assert calc.adjusted_xp == 2700
        assert calc.difficulty is DifficultyTier.MEDIUM
        assert calc.threshold == 2000

    def test_empty_roster_is_trivial(self, party_of_four):
        calc = classify(party_of_four, [])
        assert calc.base_xp == 0
        assert calc.adjusted_xp == 0
        assert calc.multiplier == 1.0
        assert calc.difficulty is DifficultyTier.TRIVIAL

    def test_multiplier_counts_all_entries(self, party_of_four):
        calc = classify(party_of_four, [_monster("Goblin Boss", 1), _monster("Goblin", "1/4", 4)])
        assert calc.monster_count == 5
        assert calc.base_xp == 400
        assert calc.adjusted_xp == 800

    def test_idempotent(self, party_of_four, ogres):
        assert classify(party_of_four, [ogres]) == classify(party_of_four, [ogres])

    @pytest.mark.parametrize("tier,roster", [
        ("easy", [("Kobold", "1/2", 5)]),
        ("medium", [("Captain", 3, 1), ("Guard", "1/2", 3)]),
        ("hard", [("Knight", 5, 1), ("Squire", 1, 1)]),
        ("deadly", [("Warlord", 5, 1), ("Veteran", 1, 2)]),
    ])
    def test_budget_round_trip(self, party_of_four, tier, roster):
        """A roster whose adjusted XP equals the tier's budget classifies as that tier."""
        monsters = [_monster(name, cr, qty) for name, cr, qty in roster]
        budget = compute_budget(party_of_four, tier)
        calc = classify(party_of_four, monsters)
        assert calc.adjusted_xp == budget
        assert calc.difficulty is DifficultyTier.parse(tier)

    def test_classify_xp_boundaries(self, party_of_four):
        thresholds = party_thresholds(party_of_four)
        assert classify_xp(999, thresholds) is DifficultyTier.TRIVIAL
        assert classify_xp(1000, thresholds) is DifficultyTier.EASY
        assert classify_xp(2999, thresholds) is DifficultyTier.MEDIUM
        assert classify_xp(4400, thresholds) is DifficultyTier.DEADLY
        assert classify_xp(100000, thresholds) is DifficultyTier.DEADLY

    def test_small_party_multiplier(self):
        calc = classify(Party.of(2, 5), [_monster("Ogre", 2, 2)])
        assert calc.multiplier == 2.0
        assert calc.adjusted_xp == 1800


# =============================================================================
# Scaling and summary
# =============================================================================

class TestScalingOptions:
    """Tests for one-creature scaling suggestions."""

    def test_ogres_easier_and_harder(self, party_of_four, ogres):
        options = {option.direction: option for option in scaling_options(party_of_four, [ogres])}
        assert options["easier"].quantity_change == -1
        assert options["easier"].adjusted_xp == 1350
        assert options["easier"].difficulty is DifficultyTier.EASY
        assert options["harder"].adjusted_xp == 3600
        assert options["harder"].difficulty is DifficultyTier.HARD

    def test_lone_monster_only_grows(self, party_of_four):
        options = scaling_options(party_of_four, [_monster("Troll", 5)])
        assert [option.direction for option in options] == ["harder"]

    def test_last_creature_of_entry_can_be_dropped(self, party_of_four):
        roster = [_monster("Captain", 3), _monster("Guard", "1/2", 3)]
        options = scaling_options(party_of_four, roster)
        drop_captain = next(o for o in options if o.monster == "Captain" and o.direction == "easier")
        assert drop_captain.adjusted_xp == 600


class TestRenderSummary:
    def test_summary_lines(self, party_of_four, ogres):
        text = render_xp_summary(classify(party_of_four, [ogres]))
        assert "Base XP: 1,350 (3 monsters)" in text
        assert "Multiplier: x2 (party of 4)" in text
        assert "Adjusted XP: 2,700" in text
        assert "Medium 2,000" in text
        assert text.endswith("Difficulty: MEDIUM")
