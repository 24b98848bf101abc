"""
Interest state machine - strict transitions between interest states.
"""

from app.fsm.states import InterestAction, InterestStatus


# Only SENT has outgoing edges; everything else is terminal.
TRANSITIONS: dict[InterestStatus, frozenset[InterestStatus]] = {
    InterestStatus.SENT: frozenset({
        InterestStatus.ACCEPTED,
        InterestStatus.DECLINED,
        InterestStatus.WITHDRAWN,
    }),
    InterestStatus.ACCEPTED: frozenset(),
    InterestStatus.DECLINED: frozenset(),
    InterestStatus.WITHDRAWN: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """Check whether an interest may move from `current` to `target`."""
    try:
        return InterestStatus(target) in TRANSITIONS[InterestStatus(current)]
    except ValueError:
        return False


def status_for_action(action: InterestAction) -> InterestStatus:
    """Resulting status for a recipient's response."""
    if action is InterestAction.ACCEPT:
        return InterestStatus.ACCEPTED
    return InterestStatus.DECLINED
