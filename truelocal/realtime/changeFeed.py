"""
Change Feed
===========

In-process change notifications for the marketplace tables.  Every service
mutation stages a change on its session; once the request transaction has
committed, the staged changes are dispatched to the subscribers registered
here.  The Socket.IO layer forwards them to connected clients.

Each subscription is scoped to one table and optionally to one column value
(``provider_id = <uuid>``), and optionally to a subset of event types.
Subscriptions are independent: the same change is delivered once to every
matching subscription, with no deduplication across them.

Usage::

    sub = change_feed.subscribe("bookings", on_change, column="provider_id", value=uid)
    ...
    sub.unsubscribe()
"""

from __future__ import annotations

import enum
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Union

from sqlalchemy.ext.asyncio import AsyncSession

from truelocal.models import UserType, role_column

logger = logging.getLogger(__name__)


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed row change.

    ``record`` is the row after the change (the removed row for DELETE);
    ``old`` carries the previous values when the caller supplied them.
    """

    table: str
    event: ChangeType
    record: dict[str, Any]
    old: dict[str, Any] | None = None
    committed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "eventType": self.event.value,
            "new": self.record if self.event is not ChangeType.DELETE else {},
            "old": self.old if self.old is not None else (
                self.record if self.event is ChangeType.DELETE else {}
            ),
            "commitTimestamp": self.committed_at.isoformat(),
        }


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


# ---------------------------------------------------------------------------
# Row serialisation
# ---------------------------------------------------------------------------

def _json_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    return value


def serialize_row(obj: Any) -> dict[str, Any]:
    """Return the column values of an ORM instance as a JSON-safe dict."""
    return {
        column.key: _json_value(getattr(obj, column.key))
        for column in obj.__table__.columns
    }


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

@dataclass
class Subscription:
    id: str
    table: str
    callback: ChangeCallback
    column: str | None = None
    value: str | None = None
    events: frozenset[ChangeType] | None = None
    _feed: "ChangeFeed | None" = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._feed is not None

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.events is not None and change.event not in self.events:
            return False
        if self.column is None:
            return True
        row = change.record if change.record else (change.old or {})
        return str(row.get(self.column)) == self.value

    def unsubscribe(self) -> None:
        """Stop receiving changes.  Calling this more than once is harmless."""
        if self._feed is None:
            return
        self._feed._remove(self.id)
        self._feed = None


class ChangeFeed:
    """Registry of table subscriptions with async fan-out."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        column: str | None = None,
        value: Any = None,
        events: Iterable[ChangeType | str] | None = None,
    ) -> Subscription:
        if column is not None and value is None:
            raise ValueError("A column filter needs a value")
        sub = Subscription(
            id=uuid.uuid4().hex,
            table=table,
            callback=callback,
            column=column,
            value=str(value) if value is not None else None,
            events=frozenset(ChangeType(e) for e in events) if events is not None else None,
            _feed=self,
        )
        self._subscriptions[sub.id] = sub
        logger.debug(
            "Subscribed %s to %s (%s=%s)", sub.id, table, column, sub.value,
        )
        return sub

    def _remove(self, subscription_id: str) -> None:
        if self._subscriptions.pop(subscription_id, None) is not None:
            logger.debug("Unsubscribed %s", subscription_id)

    def subscription_count(self, table: str | None = None) -> int:
        if table is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions.values() if s.table == table)

    def clear(self) -> None:
        for sub in list(self._subscriptions.values()):
            sub.unsubscribe()

    async def publish(
        self,
        table: str,
        event: ChangeType | str,
        record: dict[str, Any],
        old: dict[str, Any] | None = None,
    ) -> int:
        """Deliver a change to every matching subscriber.

        Returns the number of callbacks that completed without error.  A
        failing callback is logged and does not stop delivery to the rest.
        """
        change = ChangeEvent(table=table, event=ChangeType(event), record=record, old=old)
        delivered = 0
        # Snapshot: callbacks may unsubscribe while we iterate
        for sub in list(self._subscriptions.values()):
            if not sub.active or not sub.matches(change):
                continue
            try:
                result = sub.callback(change)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception(
                    "Change-feed callback failed: sub=%s table=%s event=%s",
                    sub.id, table, change.event.value,
                )
        return delivered


change_feed = ChangeFeed()


# ---------------------------------------------------------------------------
# Session staging: changes become visible only after commit
# ---------------------------------------------------------------------------

_STAGED_KEY = "truelocal_staged_changes"


def stage_change(
    db: AsyncSession,
    table: str,
    event: ChangeType | str,
    record: dict[str, Any],
    old: dict[str, Any] | None = None,
) -> None:
    """Queue a change on the session until its transaction commits."""
    db.info.setdefault(_STAGED_KEY, []).append((table, ChangeType(event), record, old))


def discard_staged(db: AsyncSession) -> None:
    db.info.pop(_STAGED_KEY, None)


async def dispatch_staged(db: AsyncSession, feed: ChangeFeed | None = None) -> int:
    """Publish everything staged on ``db``.  Call after a successful commit."""
    staged = db.info.pop(_STAGED_KEY, [])
    target = feed or change_feed
    delivered = 0
    for table, event, record, old in staged:
        delivered += await target.publish(table, event, record, old)
    return delivered


# ---------------------------------------------------------------------------
# Role-scoped helpers (dashboard, navbar badge, chat view)
# ---------------------------------------------------------------------------

Unsubscribe = Callable[[], None]


def subscribe_to_booking_updates(
    user_id: uuid.UUID | str,
    user_type: UserType | str,
    callback: ChangeCallback,
    *,
    feed: ChangeFeed | None = None,
) -> Unsubscribe:
    sub = (feed or change_feed).subscribe(
        "bookings", callback, column=role_column(user_type), value=user_id,
    )
    return sub.unsubscribe


def subscribe_to_listing_updates(
    provider_id: uuid.UUID | str,
    callback: ChangeCallback,
    *,
    feed: ChangeFeed | None = None,
) -> Unsubscribe:
    sub = (feed or change_feed).subscribe(
        "services", callback, column="provider_id", value=provider_id,
    )
    return sub.unsubscribe


def subscribe_to_conversation_updates(
    user_id: uuid.UUID | str,
    user_type: UserType | str,
    callback: ChangeCallback,
    *,
    feed: ChangeFeed | None = None,
) -> Unsubscribe:
    sub = (feed or change_feed).subscribe(
        "conversations", callback, column=role_column(user_type), value=user_id,
    )
    return sub.unsubscribe


def subscribe_to_messages(
    conversation_id: uuid.UUID | str,
    callback: ChangeCallback,
    *,
    feed: ChangeFeed | None = None,
) -> Unsubscribe:
    sub = (feed or change_feed).subscribe(
        "messages",
        callback,
        column="conversation_id",
        value=conversation_id,
        events=[ChangeType.INSERT],
    )
    return sub.unsubscribe


def subscribe_to_dashboard_updates(
    user_id: uuid.UUID | str,
    user_type: UserType | str,
    callback: ChangeCallback,
    *,
    feed: ChangeFeed | None = None,
) -> Unsubscribe:
    """Watch every table the dashboard figures are derived from.

    Bookings and reviews for either role, plus the provider's listings.
    The returned callable tears down all of them.
    """
    target = feed or change_feed
    column = role_column(user_type)
    subs = [
        target.subscribe("bookings", callback, column=column, value=user_id),
        target.subscribe("reviews", callback, column=column, value=user_id),
    ]
    if UserType(user_type) is UserType.PROVIDER:
        subs.append(target.subscribe("services", callback, column="provider_id", value=user_id))

    def unsubscribe_all() -> None:
        for sub in subs:
            sub.unsubscribe()

    return unsubscribe_all
