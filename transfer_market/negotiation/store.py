from __future__ import annotations

"""Negotiation session storage.

Sessions are ephemeral: losing one (TTL, restart, another instance) only
restarts the haggling from the opening round. The store is injected into the
negotiation service; :class:`InMemorySessionStore` serves single-process
deployments, and anything shared (redis, a DB table) can implement
:class:`SessionStore`.

Calls for one negotiation id are single-flight: the service holds
``store.lock(negotiation_id)`` for the whole call, so two concurrent calls
with the same id run one after the other.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Literal, Optional

from ..config import DEFAULT_NEGOTIATION_CONFIG, NegotiationConfig

logger = logging.getLogger(__name__)

Direction = Literal["outgoing", "incoming"]


@dataclass(frozen=True, slots=True)
class NegotiationSession:
    negotiation_id: str
    save_id: str
    direction: Direction
    player_id: str
    buyer_team_id: str
    seller_team_id: Optional[str]
    offer_id: Optional[str]
    round: int
    hardening: float
    contract_years: int
    last_human_fee: int
    last_human_wage: int
    last_ai_fee: Optional[int] = None
    last_ai_wage: Optional[int] = None
    created_at: float = 0.0

    @property
    def has_ai_counter(self) -> bool:
        return self.last_ai_fee is not None or self.last_ai_wage is not None


class SessionStore(ABC):
    @abstractmethod
    def get(self, negotiation_id: str) -> Optional[NegotiationSession]:
        """Return a live session, or None when unknown or past its TTL."""

    @abstractmethod
    def put(self, session: NegotiationSession) -> None:
        ...

    @abstractmethod
    def delete(self, negotiation_id: str) -> None:
        ...

    @abstractmethod
    def lock(self, negotiation_id: str, *, timeout_s: Optional[float] = None):
        """Context manager serializing calls for ``negotiation_id``.

        Raises TimeoutError when the lock cannot be acquired in ``timeout_s``.
        """

    def now(self) -> float:
        return time.monotonic()


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class InMemorySessionStore(SessionStore):
    """Process-local session map with TTL and a throttled sweep.

    Expired entries are hidden from ``get`` immediately; physical removal
    happens in ``sweep()``, which runs at most once per ``sweep_interval``.
    """

    def __init__(
        self,
        *,
        config: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = float(config.session_ttl_seconds)
        self._sweep_interval = float(config.sweep_interval_seconds)
        self._clock = clock
        self._sessions: Dict[str, NegotiationSession] = {}
        self._mu = threading.Lock()
        self._locks: Dict[str, _LockEntry] = {}
        self._last_sweep = clock()

    def now(self) -> float:
        return float(self._clock())

    def _expired(self, session: NegotiationSession, now: float) -> bool:
        return now - float(session.created_at) > self._ttl

    def get(self, negotiation_id: str) -> Optional[NegotiationSession]:
        self.maybe_sweep()
        with self._mu:
            session = self._sessions.get(str(negotiation_id))
        if session is None:
            return None
        if self._expired(session, self.now()):
            return None
        return session

    def put(self, session: NegotiationSession) -> None:
        with self._mu:
            self._sessions[session.negotiation_id] = session
        self.maybe_sweep()

    def delete(self, negotiation_id: str) -> None:
        with self._mu:
            self._sessions.pop(str(negotiation_id), None)

    def __len__(self) -> int:
        with self._mu:
            return len(self._sessions)

    def maybe_sweep(self) -> int:
        """Drop expired sessions if the sweep interval has elapsed. Returns the number removed."""
        now = self.now()
        with self._mu:
            if now - self._last_sweep < self._sweep_interval:
                return 0
            self._last_sweep = now
            dead = [nid for nid, s in self._sessions.items() if self._expired(s, now)]
            for nid in dead:
                del self._sessions[nid]
        if dead:
            logger.info("NEGOTIATION_SESSIONS_SWEPT count=%s", len(dead))
        return len(dead)

    @contextmanager
    def lock(self, negotiation_id: str, *, timeout_s: Optional[float] = None) -> Iterator[None]:
        key = str(negotiation_id)
        with self._mu:
            entry = self._locks.get(key)
            if entry is None:
                entry = _LockEntry()
                self._locks[key] = entry
            entry.users += 1

        try:
            if timeout_s is None:
                acquired = entry.lock.acquire()
            else:
                acquired = entry.lock.acquire(timeout=max(0.0, float(timeout_s)))
            if not acquired:
                raise TimeoutError(f"negotiation lock timeout (negotiation_id={key}, timeout_s={timeout_s})")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._mu:
                entry.users -= 1
                if entry.users <= 0 and self._locks.get(key) is entry:
                    del self._locks[key]


_DEFAULT_STORE: Optional[InMemorySessionStore] = None
_DEFAULT_STORE_MU = threading.Lock()


def default_session_store() -> InMemorySessionStore:
    """Process-wide store used when the caller does not inject one."""
    global _DEFAULT_STORE
    with _DEFAULT_STORE_MU:
        if _DEFAULT_STORE is None:
            _DEFAULT_STORE = InMemorySessionStore()
        return _DEFAULT_STORE
