from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class TransferError(Exception):
    """Structured error for transfer market flows.

    The HTTP layer maps subclasses to status codes and forwards ``code`` so the
    client can branch on a stable machine-readable value.
    """

    code: str
    message: str
    details: Optional[Any] = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"

    def to_payload(self) -> dict:
        out = {"code": self.code, "message": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out


class ValidationError(TransferError):
    """Malformed or out-of-range input."""


class NotFoundError(TransferError):
    """Unknown save, player, team, listing, offer."""


class ConflictError(TransferError):
    """Duplicate record or an entity not in the state the operation requires."""


class AuthorizationError(TransferError):
    """Caller's team does not own the listing/offer it tries to mutate."""


@dataclass
class ChunkedBatchError(TransferError):
    """A chunk of a non-atomic chunked write failed after earlier chunks committed.

    The round's AI processing must be retried from scratch.
    """

    committed_chunks: int = 0
    total_chunks: int = 0


# Error codes (stable API surface)
INVALID_FEE = "INVALID_FEE"
INVALID_WAGE = "INVALID_WAGE"
INVALID_CONTRACT_YEARS = "INVALID_CONTRACT_YEARS"
INVALID_ACTION = "INVALID_ACTION"
INVALID_TEAMS = "INVALID_TEAMS"

SAVE_NOT_FOUND = "SAVE_NOT_FOUND"
PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
TEAM_NOT_FOUND = "TEAM_NOT_FOUND"
LISTING_NOT_FOUND = "LISTING_NOT_FOUND"
OFFER_NOT_FOUND = "OFFER_NOT_FOUND"

PLAYER_ALREADY_LISTED = "PLAYER_ALREADY_LISTED"
PLAYER_NOT_WITH_TEAM = "PLAYER_NOT_WITH_TEAM"
PLAYER_NOT_AVAILABLE = "PLAYER_NOT_AVAILABLE"
DUPLICATE_OPEN_OFFER = "DUPLICATE_OPEN_OFFER"
OFFER_NOT_ACCEPTED = "OFFER_NOT_ACCEPTED"
OFFER_STATUS_CHANGED = "OFFER_STATUS_CHANGED"
OFFER_INVALID_TRANSITION = "OFFER_INVALID_TRANSITION"
OFFER_HAS_NO_COUNTER = "OFFER_HAS_NO_COUNTER"
INSUFFICIENT_BUDGET = "INSUFFICIENT_BUDGET"
NEGOTIATION_OFFER_NOT_IMPROVED = "NEGOTIATION_OFFER_NOT_IMPROVED"
NEGOTIATION_NO_COUNTER = "NEGOTIATION_NO_COUNTER"
NEGOTIATION_BUSY = "NEGOTIATION_BUSY"

NOT_OWNER = "NOT_OWNER"

BATCH_CHUNK_FAILED = "BATCH_CHUNK_FAILED"
