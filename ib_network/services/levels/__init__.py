"""
Level ladder package.

- ladder: pure resolution, validation and progress rules
- level_service: ladder administration and partner level assignment
"""

from ib_network.services.levels.ladder import (
    LevelProgress,
    check_ladder_position,
    compute_progress,
    resolve_level,
)
from ib_network.services.levels.level_service import LevelService


__all__ = [
    "LevelProgress",
    "LevelService",
    "check_ladder_position",
    "compute_progress",
    "resolve_level",
]
