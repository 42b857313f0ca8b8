"""
IB level ladder rules.

Pure functions over a snapshot of levels: resolution of a referral count to
a level, ladder validation and progress towards the next level.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from ib_network.models.ib_level import IBLevel
from ib_network.utils.exceptions import DuplicateOrder, NonMonotonicTarget


def active_ladder(levels: Sequence[IBLevel]) -> list[IBLevel]:
    """Active levels in ascending order (ties by id)."""
    return sorted(
        (level for level in levels if level.is_active),
        key=lambda level: (level.order, level.id or 0),
    )


def resolve_level(
    levels: Sequence[IBLevel], referral_count: int
) -> IBLevel | None:
    """
    Resolve a referral count to its level.

    Scans active levels ascending by order and keeps the last one whose
    target is reached, so ties go to the higher order.

    Args:
        levels: Level snapshot
        referral_count: Direct referral count

    Returns:
        Highest qualifying level, None when no level qualifies
    """
    qualified = None
    for level in active_ladder(levels):
        if level.referral_target <= referral_count:
            qualified = level
    return qualified


def check_ladder_position(
    levels: Sequence[IBLevel],
    order: int,
    referral_target: int,
    exclude_id: int | None = None,
    override: bool = False,
) -> None:
    """
    Validate that an active level fits into the ladder.

    Args:
        levels: Current level snapshot
        order: Order of the new/updated level
        referral_target: Its referral target
        exclude_id: Level being updated (ignored in the scan)
        override: Accept a target out of order with its neighbours

    Raises:
        DuplicateOrder: Another active level has this order
        NonMonotonicTarget: Target breaks the non-decreasing sequence
    """
    others = [
        level for level in active_ladder(levels) if level.id != exclude_id
    ]

    for level in others:
        if level.order == order:
            raise DuplicateOrder(
                f"Level '{level.name}' already has order {order}",
                order=order,
                level_id=level.id,
            )

    if override:
        return

    lower = [level for level in others if level.order < order]
    higher = [level for level in others if level.order > order]

    if lower and lower[-1].referral_target > referral_target:
        raise NonMonotonicTarget(
            f"Referral target {referral_target} is below "
            f"'{lower[-1].name}' ({lower[-1].referral_target})",
            order=order,
            referral_target=referral_target,
            neighbour_id=lower[-1].id,
        )
    if higher and higher[0].referral_target < referral_target:
        raise NonMonotonicTarget(
            f"Referral target {referral_target} is above "
            f"'{higher[0].name}' ({higher[0].referral_target})",
            order=order,
            referral_target=referral_target,
            neighbour_id=higher[0].id,
        )


@dataclass(frozen=True)
class LevelProgress:
    """Partner's position on the ladder."""

    current_level: IBLevel | None
    next_level: IBLevel | None
    referral_count: int
    referrals_needed: int
    progress_percent: int


def compute_progress(
    levels: Sequence[IBLevel],
    current_level: IBLevel | None,
    referral_count: int,
) -> LevelProgress:
    """
    Compute progress from the current level towards the next one.

    Args:
        levels: Level snapshot
        current_level: Partner's assigned level (may be None)
        referral_count: Direct referral count

    Returns:
        LevelProgress; 100% when there is no higher level
    """
    ladder = active_ladder(levels)
    if current_level is None:
        next_level = ladder[0] if ladder else None
        current_target = 0
    else:
        next_level = next(
            (level for level in ladder if level.order > current_level.order),
            None,
        )
        current_target = current_level.referral_target

    if next_level is None:
        return LevelProgress(
            current_level=current_level,
            next_level=None,
            referral_count=referral_count,
            referrals_needed=0,
            progress_percent=100,
        )

    span = next_level.referral_target - current_target
    done = referral_count - current_target
    if span <= 0:
        percent = Decimal(100) if done >= 0 else Decimal(0)
    else:
        percent = min(Decimal(100), max(Decimal(0), Decimal(done) * 100 / span))

    return LevelProgress(
        current_level=current_level,
        next_level=next_level,
        referral_count=referral_count,
        referrals_needed=max(0, next_level.referral_target - referral_count),
        progress_percent=int(percent.to_integral_value()),
    )
