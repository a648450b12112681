"""
TrueLocal Real-time Module
==========================

Change feed and WebSocket server for live updates.

Services only need the change feed::

    from truelocal.realtime.changeFeed import stage_change

The Socket.IO side is wired up by the application::

    from truelocal.realtime.socketServer import socket_app
    from truelocal.realtime import handlers  # registers event listeners

The ``handlers`` sub-package registers all Socket.IO event handlers and
change-feed listeners as a side-effect of import.
"""

from __future__ import annotations

from .changeFeed import (
    ChangeEvent,
    ChangeFeed,
    ChangeType,
    Subscription,
    change_feed,
    subscribe_to_booking_updates,
    subscribe_to_conversation_updates,
    subscribe_to_dashboard_updates,
    subscribe_to_listing_updates,
    subscribe_to_messages,
)

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeType",
    "Subscription",
    "change_feed",
    "subscribe_to_booking_updates",
    "subscribe_to_conversation_updates",
    "subscribe_to_dashboard_updates",
    "subscribe_to_listing_updates",
    "subscribe_to_messages",
]
