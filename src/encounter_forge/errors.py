"""
Exception hierarchy for encounter-forge.

Every error carries a human-readable message plus a ``details`` dict with the
offending field, the expected bounds and the computed value, so callers can
render a precise message without parsing strings.

These exceptions intentionally derive from ``Exception`` rather than
``ValueError``: pydantic only wraps ``ValueError``/``AssertionError`` raised in
validators, so ours reach the caller unchanged.
"""

from __future__ import annotations

from typing import Any


class EncounterForgeError(Exception):
    """Base exception for all encounter-forge errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class OutOfRangeError(EncounterForgeError):
    """Raised when an input falls outside a rule table's domain.

    Attributes:
        field: Name of the offending input (e.g. 'challenge_rating', 'level').
        value: The rejected value.
        minimum: Lowest accepted value.
        maximum: Highest accepted value (None when unbounded).
    """

    def __init__(
        self,
        field: str,
        value: Any,
        minimum: Any,
        maximum: Any = None,
        *,
        message: str | None = None,
    ) -> None:
        self.field = field
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        if message is None:
            if maximum is None:
                message = f"{field} must be >= {minimum}, got {value!r}"
            else:
                message = f"{field} must be between {minimum} and {maximum}, got {value!r}"
        super().__init__(
            message,
            details={"field": field, "value": value, "minimum": minimum, "maximum": maximum},
        )


class ValidationError(EncounterForgeError):
    """Raised when an entity violates a rules invariant.

    Examples: a lair without legendary actions, a standard spellcaster with
    no caster level, or a phase graph whose numbering has gaps.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.field = field
        combined = dict(details or {})
        if field is not None:
            combined.setdefault("field", field)
        super().__init__(message, details=combined)


class BudgetUnsatisfiableError(EncounterForgeError):
    """Raised when no roster lands inside the XP budget tolerance window.

    Attributes:
        budget: Target XP budget.
        minimum: Lower edge of the accepted window.
        maximum: Upper edge of the accepted window.
        closest_xp: Closest adjusted XP that could be achieved (None if no
            roster could be formed at all).
    """

    def __init__(
        self,
        budget: int,
        minimum: int,
        maximum: int,
        closest_xp: int | None,
        *,
        message: str | None = None,
    ) -> None:
        self.budget = budget
        self.minimum = minimum
        self.maximum = maximum
        self.closest_xp = closest_xp
        if message is None:
            message = (
                f"No roster fits the XP window {minimum}-{maximum} "
                f"(budget {budget}); closest achievable is {closest_xp}"
            )
        super().__init__(
            message,
            details={
                "budget": budget,
                "minimum": minimum,
                "maximum": maximum,
                "closest_xp": closest_xp,
                "shortfall": self.shortfall,
                "excess": self.excess,
            },
        )

    @property
    def shortfall(self) -> int:
        """XP missing to reach the bottom of the window (0 if not short)."""
        if self.closest_xp is None:
            return self.minimum
        return max(0, self.minimum - self.closest_xp)

    @property
    def excess(self) -> int:
        """XP above the top of the window (0 if not over)."""
        if self.closest_xp is None:
            return 0
        return max(0, self.closest_xp - self.maximum)
