"""
Tactical directives for monsters in an encounter plan.

Each monster in a phase gets a short directive derived from its combat
role, so the DM sees at a glance how it should fight in that phase.

Role strategies:
- Tank: hold the front line and block the approach to weaker allies
- Striker: focus damage on the most exposed target
- Controller: lock down groups with area effects and conditions
- Skirmisher: hit and move, stay out of melee reach
- Artillery: keep distance and fire from cover
- Minion: swarm and flank, fight until dropped
- Leader: command from the second rank, pull back when allies fall
- Boss: dominate the field and escalate as its HP falls
"""

from __future__ import annotations

from enum import Enum

from .monsters import MonsterProfile


class MonsterRole(str, Enum):
    """Well-known combat roles."""
    TANK = "tank"
    STRIKER = "striker"
    CONTROLLER = "controller"
    SKIRMISHER = "skirmisher"
    ARTILLERY = "artillery"
    MINION = "minion"
    LEADER = "leader"
    BOSS = "boss"


ROLE_DIRECTIVES: dict[MonsterRole, str] = {
    MonsterRole.TANK: "Hold the front line and block the approach to weaker allies",
    MonsterRole.STRIKER: "Focus damage on the most exposed or wounded target",
    MonsterRole.CONTROLLER: "Lock down clustered foes with area effects and conditions",
    MonsterRole.SKIRMISHER: "Hit and move; avoid ending turns in melee reach",
    MonsterRole.ARTILLERY: "Keep distance and attack from cover",
    MonsterRole.MINION: "Swarm and flank; fight until dropped",
    MonsterRole.LEADER: "Direct allies from the second rank; retreat if the group breaks",
    MonsterRole.BOSS: "Dominate the field and target whoever threatens it most",
}

DEFAULT_DIRECTIVE = "Engage the nearest threat"

# Directives for a boss as its HP drops past each threshold
_BOSS_ESCALATION: list[tuple[float, str]] = [
    (0.5, "Bloodied: unleash recharge and legendary abilities freely"),
    (0.25, "Desperate: all-out offense, or flee if escape is possible"),
]


def parse_role(role: str | None) -> MonsterRole | None:
    """Map a free-text role onto a known role, if any."""
    if not role:
        return None
    text = role.strip().lower()
    for known in MonsterRole:
        if known.value in text:
            return known
    return None


def directive_for(monster: MonsterProfile, *, is_boss: bool = False, boss_hp_fraction: float | None = None) -> str:
    """Tactical directive for a monster within one phase.

    Args:
        monster: The roster entry.
        is_boss: Whether this monster is the encounter's boss.
        boss_hp_fraction: HP fraction that triggered the current boss phase,
            if any. Lower fractions escalate the directive.
    """
    if is_boss:
        directive = ROLE_DIRECTIVES[MonsterRole.BOSS]
        if boss_hp_fraction is not None:
            for threshold, escalation in _BOSS_ESCALATION:
                if boss_hp_fraction <= threshold:
                    directive = escalation
        extras = []
        if monster.is_legendary:
            extras.append(f"spend {monster.legendary.actions_per_round} legendary actions each round")
        if monster.has_lair:
            extras.append(f"lair action on initiative {monster.lair.initiative}")
        if extras:
            directive = f"{directive} ({'; '.join(extras)})"
        return directive

    role = parse_role(monster.role)
    directive = ROLE_DIRECTIVES.get(role, DEFAULT_DIRECTIVE) if role else DEFAULT_DIRECTIVE
    if monster.tactics is not None and monster.tactics.combat_strategy:
        directive = f"{directive}. {monster.tactics.combat_strategy}"
    return directive
