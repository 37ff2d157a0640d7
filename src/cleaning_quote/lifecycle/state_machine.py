"""
Quote lifecycle.

    draft --persist--> shared --confirm+lock--> confirmed-locked
                         |                            |
                         +------admin cancel----------+--> cancelled (terminal)

Nothing leaves cancelled and nothing clears the locked flag.
"""
from enum import Enum
from typing import Optional

from ..engine.models import QuoteStatus
from ..errors import InvalidTransitionError
from ..storage.base import StorageRecord


TRANSITIONS: dict[QuoteStatus, frozenset[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SHARED}),
    QuoteStatus.SHARED: frozenset({QuoteStatus.CONFIRMED_LOCKED, QuoteStatus.CANCELLED}),
    QuoteStatus.CONFIRMED_LOCKED: frozenset({QuoteStatus.CANCELLED}),
    QuoteStatus.CANCELLED: frozenset(),
}

LOCKED_STATUSES = frozenset({QuoteStatus.CONFIRMED_LOCKED, QuoteStatus.CANCELLED})


class Action(str, Enum):
    """What a viewer may do with a quote."""
    EDIT = "edit"
    SHARE = "share"
    VIEW = "view"
    CONFIRM = "confirm"
    CANCEL = "cancel"


def can_transition(current: QuoteStatus, target: QuoteStatus) -> bool:
    return target in TRANSITIONS[current]


def transition(current: QuoteStatus, target: QuoteStatus) -> QuoteStatus:
    """Return target if the move is allowed, otherwise raise InvalidTransitionError."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    return target


def is_truthy_flag(value) -> bool:
    return str(value or "").strip().lower() in ('1', 'true', 'yes')


def status_from_context(context: Optional[dict], tags: Optional[list[str]] = None) -> QuoteStatus:
    """
    Interpret a persisted record's metadata.

    Older records marked cancellation with a 'cancelled' tag instead of
    the status context key; both are honored.
    """
    context = context or {}
    if context.get('status') == QuoteStatus.CANCELLED.value or 'cancelled' in (tags or []):
        return QuoteStatus.CANCELLED
    if is_truthy_flag(context.get('locked')):
        return QuoteStatus.CONFIRMED_LOCKED
    return QuoteStatus.SHARED


def status_from_record(record: StorageRecord) -> QuoteStatus:
    return status_from_context(record.context, record.tags)


def permitted_actions(status: QuoteStatus, admin: bool = False, locally_confirmed: bool = False) -> frozenset[Action]:
    """
    Actions offered to a viewer, derived only from status and privilege.

    locally_confirmed covers the window between a confirm and the
    record's locked flag becoming visible: the confirm action is not
    offered again.
    """
    if status == QuoteStatus.DRAFT:
        return frozenset({Action.EDIT, Action.SHARE})

    actions = {Action.VIEW}
    if status == QuoteStatus.SHARED and not locally_confirmed:
        actions.add(Action.CONFIRM)
    if admin and status != QuoteStatus.CANCELLED:
        actions.add(Action.CANCEL)
    return frozenset(actions)
