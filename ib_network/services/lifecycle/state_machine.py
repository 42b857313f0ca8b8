"""
IB partner lifecycle state machine.

    PENDING --approve--> ACTIVE --block----> BLOCKED   --unblock---> ACTIVE
       |                   |
       +--reject--> REJECTED +--suspend--> SUSPENDED --reinstate--> ACTIVE

REJECTED is terminal.
"""

from enum import StrEnum

from ib_network.models.enums import IBStatus
from ib_network.utils.exceptions import InvalidTransition


class LifecycleAction(StrEnum):
    """Admin (or automatic) actions on a partner."""

    APPLY = "apply"
    APPROVE = "approve"
    REJECT = "reject"
    BLOCK = "block"
    SUSPEND = "suspend"
    UNBLOCK = "unblock"
    REINSTATE = "reinstate"


# action -> (required current status, resulting status)
TRANSITIONS: dict[LifecycleAction, tuple[IBStatus, IBStatus]] = {
    LifecycleAction.APPROVE: (IBStatus.PENDING, IBStatus.ACTIVE),
    LifecycleAction.REJECT: (IBStatus.PENDING, IBStatus.REJECTED),
    LifecycleAction.BLOCK: (IBStatus.ACTIVE, IBStatus.BLOCKED),
    LifecycleAction.SUSPEND: (IBStatus.ACTIVE, IBStatus.SUSPENDED),
    LifecycleAction.UNBLOCK: (IBStatus.BLOCKED, IBStatus.ACTIVE),
    LifecycleAction.REINSTATE: (IBStatus.SUSPENDED, IBStatus.ACTIVE),
}


def next_status(current: str, action: LifecycleAction) -> IBStatus:
    """
    Get the status an action leads to.

    Args:
        current: Current partner status
        action: Requested action

    Returns:
        Resulting status

    Raises:
        InvalidTransition: Action not allowed from current status
    """
    transition = TRANSITIONS.get(action)
    if transition is None or transition[0] != current:
        raise InvalidTransition(
            f"Cannot {action} an IB partner in status {current}",
            action=str(action),
            status=str(current),
        )
    return transition[1]


def allowed_actions(current: str) -> list[LifecycleAction]:
    """Actions available from a status (admin UI hints)."""
    return [
        action
        for action, (source, _) in TRANSITIONS.items()
        if source == current
    ]
