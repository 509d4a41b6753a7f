"""
Tests for the encounter-forge exception hierarchy.
"""

import pytest

from encounter_forge.errors import (
    BudgetUnsatisfiableError,
    EncounterForgeError,
    OutOfRangeError,
    ValidationError,
)


class TestErrors:
    """Tests for messages and structured details."""

    def test_hierarchy(self):
        for cls in (OutOfRangeError, ValidationError, BudgetUnsatisfiableError):
            assert issubclass(cls, EncounterForgeError)
            assert not issubclass(cls, ValueError)

    def test_out_of_range_bounded(self):
        error = OutOfRangeError("level", 25, 1, 20)
        assert error.message == "level must be between 1 and 20, got 25"
        assert error.details == {"field": "level", "value": 25, "minimum": 1, "maximum": 20}
        assert "[field='level'" in str(error)

    def test_out_of_range_unbounded(self):
        error = OutOfRangeError("quantity", 0, 1)
        assert error.message == "quantity must be >= 1, got 0"
        assert error.maximum is None

    def test_validation_error_field(self):
        error = ValidationError("bad lair", field="lair", details={"challenge_rating": 3})
        assert error.field == "lair"
        assert error.details == {"challenge_rating": 3, "field": "lair"}

    def test_validation_error_plain(self):
        error = ValidationError("bad")
        assert str(error) == "bad"
        assert error.details == {}

    def test_budget_shortfall(self):
        error = BudgetUnsatisfiableError(2000, 1600, 2400, 1350)
        assert error.shortfall == 250
        assert error.excess == 0
        assert error.details["closest_xp"] == 1350
        assert "1600-2400" in error.message

    def test_budget_excess(self):
        error = BudgetUnsatisfiableError(1000, 800, 1200, 2700)
        assert error.shortfall == 0
        assert error.excess == 1500

    def test_budget_nothing_formed(self):
        error = BudgetUnsatisfiableError(1000, 800, 1200, None)
        assert error.shortfall == 800
        assert error.excess == 0

    def test_repr(self):
        assert repr(ValidationError("bad")) == "ValidationError(message='bad', details={})"

    def test_catchable_as_base(self):
        with pytest.raises(EncounterForgeError):
            raise OutOfRangeError("cr", 31, 0, 30)
