"""
Encounter composer.

Builds a complete encounter for a party: computes the XP budget for the
requested tier, accepts or derives a roster whose adjusted XP lands inside
the tolerance window around that budget, classifies the result and plans
its phases.

Rosters come from one of three places, in order of precedence:
- named monsters supplied with the request (validated, grown if short)
- a candidate source, typically the AI content generator (untrusted)
- CR-table placeholders ("CR 3 Creature") when there is no source or the
  caller asked to be surprised

The requested tier is advisory. The computed classification is what the
result reports as its difficulty.
"""

from __future__ import annotations

import logging
import math
from fractions import Fraction
from typing import Any, Iterable, Iterator, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config import DEFAULT_CONFIG, ForgeConfig
from ..errors import BudgetUnsatisfiableError, OutOfRangeError, ValidationError
from .difficulty import (
    Party,
    ScalingOption,
    XPCalculation,
    adjusted_xp_for,
    classify,
    compute_budget,
    render_xp_summary,
    scaling_options,
)
from .monsters import MonsterProfile
from .phases import PhaseGraph, build_phase_graph, select_boss
from .rule_tables import (
    CR_TO_XP,
    VALID_CRS,
    CombatType,
    DifficultyTier,
    count_multiplier,
    format_cr,
)

logger = logging.getLogger("encounter-forge.combat")


# =============================================================================
# Request / response models
# =============================================================================

class EncounterConstraints(BaseModel):
    """Optional limits on the monsters an encounter may use."""

    model_config = ConfigDict(frozen=True)

    monster_type: str | None = Field(default=None, description="Creature type filter (e.g. undead)")
    environment: str | None = Field(default=None, description="Environment / terrain (e.g. forest)")
    named_monsters: tuple[MonsterProfile, ...] = Field(
        default=(), description="Monsters the encounter must be built from"
    )
    min_cr: float = Field(default=0, description="Minimum challenge rating")
    max_cr: float = Field(default=30, description="Maximum challenge rating")

    @model_validator(mode="after")
    def _check_cr_bounds(self) -> "EncounterConstraints":
        for field in ("min_cr", "max_cr"):
            value = getattr(self, field)
            if not 0 <= value <= 30:
                raise OutOfRangeError(field, value, 0, 30)
        if self.min_cr > self.max_cr:
            raise ValidationError(
                f"min_cr ({self.min_cr}) exceeds max_cr ({self.max_cr})", field="min_cr"
            )
        return self


class EncounterRequest(BaseModel):
    """Inbound request for a composed encounter."""

    model_config = ConfigDict(frozen=True)

    party: Party
    tier: DifficultyTier = DifficultyTier.MEDIUM
    combat_type: CombatType = CombatType.SINGLE
    constraints: EncounterConstraints = Field(default_factory=EncounterConstraints)
    surprise_me: bool = Field(
        default=False, description="Ignore the candidate source and derive a roster from the CR table"
    )

    @field_validator("tier", mode="before")
    @classmethod
    def _parse_tier(cls, value: Any) -> DifficultyTier:
        return DifficultyTier.parse(value)


class CandidateQuery(BaseModel):
    """What the composer asks the content generator for."""

    model_config = ConfigDict(frozen=True)

    challenge_rating_range: tuple[float, float]
    monster_type: str | None = None
    environment: str | None = None


@runtime_checkable
class CandidateSource(Protocol):
    """Supplier of untrusted monster stat blocks (usually an AI generator)."""

    def fetch_candidates(self, query: CandidateQuery) -> list[dict[str, Any]]:
        ...


class RejectedCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    reason: str
    field: str | None = None


class EncounterResult(BaseModel):
    """A composed encounter. Immutable; re-run classify() on a copy to edit."""

    model_config = ConfigDict(frozen=True)

    requested_difficulty: DifficultyTier
    difficulty: DifficultyTier = Field(description="Computed, authoritative difficulty")
    combat_type: CombatType
    party: Party
    budget: int
    roster: tuple[MonsterProfile, ...]
    phases: PhaseGraph
    xp_calculation: XPCalculation
    summary: str = Field(description="XP summary ready for display")
    rejected_candidates: tuple[RejectedCandidate, ...] = ()
    notes: tuple[str, ...] = ()
    scaling: tuple[ScalingOption, ...] = ()

    @property
    def matches_request(self) -> bool:
        return self.difficulty is self.requested_difficulty

    def reclassify(self, config: ForgeConfig | None = None) -> XPCalculation:
        """Classify this result's roster again."""
        return classify(self.party, self.roster, config)


# =============================================================================
# Composition search
# =============================================================================

class _Composition:
    """A candidate roster as (template, count) pairs with its XP math."""

    __slots__ = ("groups", "base_xp", "count", "adjusted_xp")

    def __init__(self, groups: list[tuple[MonsterProfile, int]], party_size: int) -> None:
        self.groups = groups
        self.base_xp = sum(monster.xp_value * count for monster, count in groups)
        self.count = sum(count for _, count in groups)
        self.adjusted_xp = adjusted_xp_for(self.base_xp, count_multiplier(self.count, party_size))

    def sort_key(self, budget: int) -> tuple[int, int, int]:
        # Closest to budget, then fewer creatures, then more base XP
        return (abs(self.adjusted_xp - budget), self.count, -self.base_xp)


def _compositions(
    pool: list[MonsterProfile],
    combat_type: CombatType,
    party_size: int,
    max_group: int,
) -> Iterator[_Composition]:
    """Enumerate the roster shapes a combat type allows.

    - single: one group of 1..max_group, or a leader with 1..max_group minions
    - boss: a lone boss, or a boss with 1..max_group lower-CR minions
    - multiple / dynamic: two distinct groups, the stronger of 1..3 creatures
    """
    ordered = sorted(pool, key=lambda m: m.xp_value, reverse=True)

    if combat_type is CombatType.SINGLE:
        for monster in ordered:
            for count in range(1, max_group + 1):
                yield _Composition([(monster, count)], party_size)

    if combat_type in (CombatType.SINGLE, CombatType.BOSS):
        for leader in ordered:
            if combat_type is CombatType.BOSS:
                yield _Composition([(leader, 1)], party_size)
            for minion in ordered:
                if minion.challenge_rating >= leader.challenge_rating:
                    continue
                for count in range(1, max_group + 1):
                    yield _Composition([(leader, 1), (minion, count)], party_size)

    if combat_type in (CombatType.MULTIPLE, CombatType.DYNAMIC):
        for strong in ordered:
            for weak in ordered:
                if weak is strong or weak.xp_value > strong.xp_value:
                    continue
                for strong_count in range(1, 4):
                    for weak_count in range(1, max_group + 1):
                        yield _Composition([(strong, strong_count), (weak, weak_count)], party_size)


def _placeholder_pool(min_cr: float, max_cr: float) -> list[MonsterProfile]:
    return [
        MonsterProfile(name=f"CR {format_cr(cr)} Creature", challenge_rating=cr)
        for cr in VALID_CRS
        if min_cr <= cr <= max_cr
    ]


def _slot_role(combat_type: CombatType, index: int, group_count: int) -> tuple[str, str]:
    """(role, placeholder suffix) for the index-th group of a composition."""
    if combat_type is CombatType.BOSS:
        return ("boss", "Boss") if index == 0 else ("minion", "Minion")
    if group_count == 1:
        return "striker", "Creature"
    return ("leader", "Leader") if index == 0 else ("minion", "Minion")


class EncounterComposer:
    """Compose encounters against the XP budget.

    Example:
        >>> composer = EncounterComposer()
        >>> request = EncounterRequest(party=Party.of(4, 5), tier="hard")
        >>> result = composer.compose(request)
        >>> result.difficulty, result.xp_calculation.adjusted_xp

    Args:
        config: Forge settings; defaults to ForgeConfig().
        candidate_source: Optional supplier of untrusted monster candidates.
    """

    def __init__(
        self,
        config: ForgeConfig | None = None,
        candidate_source: CandidateSource | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.candidate_source = candidate_source

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def budget_window(self, budget: int) -> tuple[int, int]:
        """Inclusive adjusted-XP window accepted for a budget."""
        low = math.ceil(Fraction(budget) * Fraction(str(self.config.budget_tolerance_low)))
        high = math.floor(Fraction(budget) * Fraction(str(self.config.budget_tolerance_high)))
        return low, high

    def compose(self, request: EncounterRequest) -> EncounterResult:
        """Build an encounter for the request.

        Raises:
            BudgetUnsatisfiableError: If no roster fits the budget window.
            ValidationError: If every candidate from the source is rejected,
                or the roster cannot support the requested combat type.
            OutOfRangeError: If an input is outside the rule tables.
        """
        party = request.party
        constraints = request.constraints
        budget = compute_budget(party, request.tier, self.config)
        window = self.budget_window(budget)
        notes: list[str] = []
        rejected: list[RejectedCandidate] = []

        if constraints.named_monsters:
            roster = self._fit_named_monsters(request, budget, window)
        else:
            if self.candidate_source is not None and not request.surprise_me:
                pool, rejected = self._fetch_pool(request, window)
                placeholder = False
            else:
                pool = _placeholder_pool(constraints.min_cr, constraints.max_cr)
                placeholder = True
                if self.candidate_source is None:
                    notes.append("No monster source available. Showing CR-based placeholder monsters.")

            pool = self._filter_by_type(pool, constraints.monster_type, notes, placeholder)
            roster = self._search(pool, request, budget, window, placeholder)

        calc = classify(party, roster, self.config)
        if calc.difficulty is not request.tier:
            message = (
                f"Requested {request.tier.value} but the roster computes as "
                f"{calc.difficulty.value} ({calc.adjusted_xp} adjusted XP)"
            )
            notes.append(message)
            logger.warning(message)

        phases = build_phase_graph(request.combat_type, roster, self.config, constraints.environment)

        summary = "\n".join([
            f"Encounter ({request.combat_type.value}): {calc.difficulty.value.upper()} "
            f"for {party.size} x level {party.average_level}",
            f"XP Budget ({request.tier.value}): {budget:,} (window {window[0]:,}-{window[1]:,})",
            render_xp_summary(calc),
        ])

        logger.info(
            f"Composed {request.combat_type.value} encounter: {len(roster)} groups, "
            f"{calc.adjusted_xp} adjusted XP, {calc.difficulty.value}"
        )

        return EncounterResult(
            requested_difficulty=request.tier,
            difficulty=calc.difficulty,
            combat_type=request.combat_type,
            party=party,
            budget=budget,
            roster=tuple(roster),
            phases=phases,
            xp_calculation=calc,
            summary=summary,
            rejected_candidates=tuple(rejected),
            notes=tuple(notes),
            scaling=tuple(scaling_options(party, roster, self.config)),
        )

    # -------------------------------------------------------------------------
    # Roster sources
    # -------------------------------------------------------------------------

    def _revalidate(self, monster: MonsterProfile) -> MonsterProfile:
        """Re-check a caller-built profile against this composer's floors."""
        return MonsterProfile.model_validate(
            monster.model_dump(), context=self.config.validation_context()
        )

    def _fit_named_monsters(
        self,
        request: EncounterRequest,
        budget: int,
        window: tuple[int, int],
    ) -> list[MonsterProfile]:
        """Accept the named roster, adding creatures one at a time if short."""
        roster = _merge_duplicates(self._revalidate(m) for m in request.constraints.named_monsters)
        low, high = window
        party = request.party

        if request.combat_type in (CombatType.MULTIPLE, CombatType.DYNAMIC) and len(roster) < 2:
            raise ValidationError(
                f"A {request.combat_type.value} encounter needs at least two monster groups, "
                f"got {len(roster)}",
                field="named_monsters",
            )

        fixed: set[str] = set()
        if request.combat_type is CombatType.BOSS:
            fixed.add(select_boss(roster).name)

        adjusted = classify(party, roster, self.config).adjusted_xp
        if adjusted > high:
            raise BudgetUnsatisfiableError(
                budget, low, high, adjusted,
                message=(
                    f"Named monsters already cost {adjusted} adjusted XP, above the "
                    f"{high} XP ceiling for a {request.tier.value} encounter"
                ),
            )

        while adjusted < low:
            best: tuple[list[MonsterProfile], int] | None = None
            for index, monster in enumerate(roster):
                if monster.name in fixed:
                    continue
                grown = roster[:index] + [monster.with_quantity(monster.quantity + 1)] + roster[index + 1:]
                grown_xp = classify(party, grown, self.config).adjusted_xp
                if grown_xp > high:
                    continue
                if best is None or abs(grown_xp - budget) < abs(best[1] - budget):
                    best = (grown, grown_xp)
            if best is None:
                raise BudgetUnsatisfiableError(
                    budget, low, high, adjusted,
                    message=(
                        f"Named monsters reach only {adjusted} adjusted XP and adding any "
                        f"creature overshoots the {high} XP ceiling"
                    ),
                )
            roster, adjusted = best
            logger.debug(f"Grew named roster to {adjusted} adjusted XP")

        return roster

    def _fetch_pool(
        self,
        request: EncounterRequest,
        window: tuple[int, int],
    ) -> tuple[list[MonsterProfile], list[RejectedCandidate]]:
        """Ask the candidate source for monsters and validate each one."""
        constraints = request.constraints
        affordable = [cr for cr, xp in CR_TO_XP.items() if xp <= window[1]] or [0]
        query = CandidateQuery(
            challenge_rating_range=(constraints.min_cr, min(constraints.max_cr, max(affordable))),
            monster_type=constraints.monster_type,
            environment=constraints.environment,
        )
        candidates = self.candidate_source.fetch_candidates(query)

        pool: list[MonsterProfile] = []
        rejected: list[RejectedCandidate] = []
        seen: set[str] = set()
        for data in candidates:
            name = str(data.get("name", "<unnamed>")) if isinstance(data, dict) else "<unnamed>"
            try:
                monster = MonsterProfile.from_candidate(data, self.config)
            except (ValidationError, OutOfRangeError) as e:
                logger.warning(f"Rejected monster candidate {name!r}: {e.message}")
                rejected.append(RejectedCandidate(
                    name=name, reason=e.message, field=e.details.get("field"),
                ))
                continue
            if not constraints.min_cr <= monster.challenge_rating <= constraints.max_cr:
                rejected.append(RejectedCandidate(
                    name=name,
                    reason=f"CR {monster.cr_label} outside {format_cr(constraints.min_cr)}-"
                           f"{format_cr(constraints.max_cr)}",
                    field="challenge_rating",
                ))
                continue
            if monster.name in seen:
                continue
            seen.add(monster.name)
            pool.append(monster.with_quantity(1))

        if not pool:
            raise ValidationError(
                f"None of the {len(candidates)} monster candidates passed validation",
                field="candidates",
                details={"rejected": [r.model_dump() for r in rejected]},
            )
        return pool, rejected

    def _filter_by_type(
        self,
        pool: list[MonsterProfile],
        monster_type: str | None,
        notes: list[str],
        placeholder: bool,
    ) -> list[MonsterProfile]:
        if not monster_type or placeholder:
            return pool
        filtered = [
            m for m in pool
            if m.creature_type and m.creature_type.lower() == monster_type.lower()
        ]
        if not filtered:
            notes.append(f"No candidates of type '{monster_type}'; using all candidates.")
            return pool
        return filtered

    def _search(
        self,
        pool: list[MonsterProfile],
        request: EncounterRequest,
        budget: int,
        window: tuple[int, int],
        placeholder: bool,
    ) -> list[MonsterProfile]:
        """Pick the composition closest to budget inside the window."""
        low, high = window
        best: _Composition | None = None
        closest: _Composition | None = None

        for composition in _compositions(
            pool, request.combat_type, request.party.size, self.config.max_group_size
        ):
            if closest is None or composition.sort_key(budget) < closest.sort_key(budget):
                closest = composition
            if low <= composition.adjusted_xp <= high:
                if best is None or composition.sort_key(budget) < best.sort_key(budget):
                    best = composition

        if best is None:
            raise BudgetUnsatisfiableError(
                budget, low, high, closest.adjusted_xp if closest else None,
            )

        roster = []
        for index, (monster, count) in enumerate(best.groups):
            role, suffix = _slot_role(request.combat_type, index, len(best.groups))
            update: dict[str, Any] = {"quantity": count}
            if placeholder:
                update["name"] = f"CR {monster.cr_label} {suffix}"
            if placeholder or not monster.role:
                update["role"] = role
            roster.append(monster.model_copy(update=update))
        return roster


def _merge_duplicates(monsters: Iterable[MonsterProfile]) -> list[MonsterProfile]:
    """Fold repeated entries of the same name into one, summing quantities."""
    merged: dict[str, MonsterProfile] = {}
    for monster in monsters:
        if monster.name in merged:
            existing = merged[monster.name]
            if existing.challenge_rating != monster.challenge_rating:
                raise ValidationError(
                    f"{monster.name!r} appears twice with different CRs "
                    f"({existing.cr_label} and {monster.cr_label})",
                    field="named_monsters",
                )
            merged[monster.name] = existing.with_quantity(existing.quantity + monster.quantity)
        else:
            merged[monster.name] = monster
    return list(merged.values())


def compose_encounter(
    request: EncounterRequest,
    candidate_source: CandidateSource | None = None,
    config: ForgeConfig | None = None,
) -> EncounterResult:
    """Compose an encounter with a one-off composer."""
    return EncounterComposer(config, candidate_source).compose(request)
