"""Reminder scheduling.

Decides, for one workspace at one instant, whether its owner is due a
reminder.  Pure: the caller supplies the clock and the notification history,
and records the reminder if it sends one.

Offsets are configured as days *before* expiry (negative: after expiry but
before deletion).  Walking the ascending offsets, the first one larger than
the remaining time is the checkpoint crossed most recently.  The owner is
reminded unless the latest history entry already postdates that checkpoint::

    offsets   [-7d]        [1d]     [7d]
    ----------|------------|--------|-----------> time to expiry
                      remaining=5d  ^
                                    nearest crossed checkpoint: 7 days before expiry

A checkpoint counts as crossed only once the remaining time is strictly
below it: at exactly seven days before expiry, the 7-day reminder is not due
yet.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from workspaces.core.models.enums import MailKind
from workspaces.core.models.workspace import whole_days


@dataclass(frozen=True)
class Reminder:
    kind: MailKind
    """``EXPIRING`` before expiry, ``DELETING`` after it."""
    days: int
    """Days until expiry, or until permanent deletion."""
    deadline: datetime
    """Instant the triggering checkpoint was crossed."""


def crossed_offset(remaining: timedelta, offsets: Sequence[timedelta]) -> timedelta | None:
    """The smallest offset strictly greater than *remaining*, if any.

    *offsets* must be sorted ascending.
    """
    for offset in offsets:
        if offset > remaining:
            return offset
    return None


def evaluate(
    expiration: datetime,
    offsets: Sequence[timedelta],
    last_notified: datetime | None,
    now: datetime,
    retention: timedelta,
) -> Reminder | None:
    """Return the reminder due at *now*, or ``None``."""
    remaining = expiration - now
    offset = crossed_offset(remaining, offsets)
    if offset is None:
        return None

    deadline = expiration - offset
    if last_notified is not None and last_notified >= deadline:
        return None

    if remaining >= timedelta(0):
        return Reminder(kind=MailKind.EXPIRING, days=whole_days(remaining), deadline=deadline)
    return Reminder(kind=MailKind.DELETING, days=whole_days(retention - (now - expiration)), deadline=deadline)
