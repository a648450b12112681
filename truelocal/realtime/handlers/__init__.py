"""
TrueLocal Real-time Handlers
============================

Socket.IO event handlers:
  - chatHandler -- live messaging and message-insert fan-out

Importing this module registers all event handlers with the shared
Socket.IO server instance.
"""

from __future__ import annotations

from . import chatHandler

__all__ = [
    "chatHandler",
]
