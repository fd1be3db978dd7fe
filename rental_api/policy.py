"""
Access policy for rental operations.

``authorize`` is a pure decision: it looks at who is asking, what they want to
do and (where it matters) whose resource it is, and answers allow or deny with
a reason. Nothing is written until the caller has an ``allow``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional

from .exceptions import ForbiddenError
from .models import BookingStatus, Role

logger = logging.getLogger(__name__)

CANCEL_WINDOW_PASSED = "Cannot cancel booking on or after the start date: the cancellation window has passed"


@dataclass(frozen=True)
class Principal:
    """The authenticated actor behind a request."""

    id: int
    role: Role

    def __post_init__(self):
        try:
            object.__setattr__(self, "role", Role(self.role))
        except ValueError:
            # left as-is; authorize() denies unknown roles
            pass

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin


class Action(str, Enum):
    CREATE_BOOKING = "create_booking"
    LIST_BOOKINGS = "list_bookings"
    UPDATE_BOOKING_STATUS = "update_booking_status"
    LIST_USERS = "list_users"
    GET_USER = "get_user"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"
    MANAGE_VEHICLE = "manage_vehicle"


@dataclass(frozen=True)
class StatusChange:
    customer_id: int
    rent_start_date: date
    status: BookingStatus


@dataclass(frozen=True)
class UserChange:
    user_id: int
    fields: FrozenSet[str]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


def utc_today() -> date:
    """Today's calendar date at UTC midnight."""
    return datetime.now(timezone.utc).date()


def _admin_only(principal: Principal, resource, today: date) -> Decision:
    if principal.is_admin:
        return ALLOW
    return deny("You do not have permission to perform this action")


def _create_booking(principal: Principal, customer_id: int, today: date) -> Decision:
    if principal.is_admin or customer_id == principal.id:
        return ALLOW
    return deny("Customers can only create bookings for themselves")


def _list_bookings(principal: Principal, resource, today: date) -> Decision:
    # scoping is applied by the query, not here
    return ALLOW


def _update_booking_status(principal: Principal, change: StatusChange, today: date) -> Decision:
    if principal.is_admin:
        return ALLOW
    if change.customer_id != principal.id:
        return deny("You can only update your own bookings")
    if change.status != BookingStatus.cancelled:
        return deny("Customers can only cancel bookings")
    start = change.rent_start_date
    if isinstance(start, datetime):
        start = start.astimezone(timezone.utc).date() if start.tzinfo else start.date()
    if not start > today:
        return deny(CANCEL_WINDOW_PASSED)
    return ALLOW


def _get_user(principal: Principal, user_id: int, today: date) -> Decision:
    if principal.is_admin or user_id == principal.id:
        return ALLOW
    return deny("You can only view your own profile")


def _update_user(principal: Principal, change: UserChange, today: date) -> Decision:
    if principal.is_admin:
        return ALLOW
    if change.user_id != principal.id:
        return deny("You can only update your own profile")
    if "role" in change.fields:
        return deny("Only admins can update user roles")
    return ALLOW


_RULES: Dict[Action, Callable[[Principal, object, date], Decision]] = {
    Action.CREATE_BOOKING: _create_booking,
    Action.LIST_BOOKINGS: _list_bookings,
    Action.UPDATE_BOOKING_STATUS: _update_booking_status,
    Action.LIST_USERS: _admin_only,
    Action.GET_USER: _get_user,
    Action.UPDATE_USER: _update_user,
    Action.DELETE_USER: _admin_only,
    Action.MANAGE_VEHICLE: _admin_only,
}


def authorize(principal: Principal, action: Action, resource=None, today: Optional[date] = None) -> Decision:
    if principal.role not in (Role.admin, Role.customer):
        return deny("Unknown role")
    return _RULES[action](principal, resource, today or utc_today())


def enforce(decision: Decision, principal: Optional[Principal] = None, action: Optional[Action] = None) -> None:
    """Raise ForbiddenError for a deny decision."""
    if decision.allowed:
        return
    logger.warning(
        "Denied %s for principal %s: %s",
        action.value if action else "action",
        principal.id if principal else "?",
        decision.reason,
    )
    raise ForbiddenError(decision.reason)


def require(principal: Principal, action: Action, resource=None, today: Optional[date] = None) -> None:
    enforce(authorize(principal, action, resource, today), principal, action)
