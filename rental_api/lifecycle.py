"""
Booking status transitions.

Every requested status is accepted (admins may move a booking anywhere), but
each move carries the availability effect that keeps a vehicle ``booked``
exactly while it has an active booking.
"""

from enum import Enum

from .models import BookingStatus


class Effect(str, Enum):
    NONE = "none"
    RESERVE = "reserve"
    RELEASE = "release"


def transition(current: BookingStatus, target: BookingStatus) -> Effect:
    current, target = BookingStatus(current), BookingStatus(target)
    if current == target:
        return Effect.NONE
    if current == BookingStatus.active:
        return Effect.RELEASE
    if target == BookingStatus.active:
        # re-activating a closed booking has to win the vehicle back
        return Effect.RESERVE
    # cancelled <-> returned: the vehicle was already released
    return Effect.NONE
