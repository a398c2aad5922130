from __future__ import annotations

"""Live transfer negotiations.

- Round-bounded protocol shared by outgoing bids and incoming AI bids
- Ephemeral sessions behind an injectable store with TTL and per-id locking
"""

from .store import InMemorySessionStore, NegotiationSession, SessionStore, default_session_store

__all__ = [
    "InMemorySessionStore",
    "NegotiationSession",
    "SessionStore",
    "default_session_store",
]
