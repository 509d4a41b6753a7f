"""
Encounter Forge - D&D 5e encounter composition and difficulty engine, served over FastMCP.
"""

from .config import ForgeConfig, load_config
from .errors import BudgetUnsatisfiableError, EncounterForgeError, OutOfRangeError, ValidationError

try:
    from importlib.metadata import PackageNotFoundError, version as _get_version
    __version__ = _get_version("encounter-forge")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Source checkout without installed metadata

__all__ = [
    "ForgeConfig",
    "load_config",
    "EncounterForgeError",
    "OutOfRangeError",
    "ValidationError",
    "BudgetUnsatisfiableError",
]
