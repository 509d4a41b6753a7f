"""
Pytest configuration and fixtures for encounter-forge tests.
"""

import sys
from pathlib import Path
import pytest

# Add src directory to Python path to allow importing encounter_forge
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from encounter_forge.config import ForgeConfig
from encounter_forge.combat.difficulty import Party
from encounter_forge.combat.monsters import MonsterProfile


@pytest.fixture
def config() -> ForgeConfig:
    """Default forge settings."""
    return ForgeConfig()


@pytest.fixture
def party_of_four() -> Party:
    """Four level-5 characters: easy 1000, medium 2000, hard 3000, deadly 4400."""
    return Party.of(4, 5)


@pytest.fixture
def ogres() -> MonsterProfile:
    """Three CR 2 ogres (450 XP each)."""
    return MonsterProfile(name="Ogre", challenge_rating=2, quantity=3, role="brute", creature_type="giant")


@pytest.fixture
def adult_dragon() -> MonsterProfile:
    """A CR 17 legendary dragon with a lair."""
    return MonsterProfile(
        name="Adult Red Dragon",
        challenge_rating=17,
        ability_scores={"str": 27, "dex": 10, "con": 25, "int": 16, "wis": 13, "cha": 21},
        creature_type="dragon",
        immunities=["fire"],
        legendary={"actions_per_round": 3},
        lair={"initiative": 20, "regional_effects": True},
    )


class RecordingSource:
    """Candidate source returning a fixed payload and remembering its queries."""

    def __init__(self, candidates):
        self.candidates = candidates
        self.queries = []

    def fetch_candidates(self, query):
        self.queries.append(query)
        return list(self.candidates)


@pytest.fixture
def recording_source():
    return RecordingSource
