from __future__ import annotations

"""Tagged mutation intents.

Services never issue SQL directly for writes; they build a list of intents
and hand it to ``LeagueRepo.apply_intents`` (one transaction) or
``LeagueRepo.apply_intents_chunked`` (one transaction per chunk). Each intent
renders to one or more :class:`Statement` objects; the bound-value count of
those statements is what the chunker packs against the per-call limit.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import (
    OFFER_INVALID_TRANSITION,
    OFFER_STATUS_CHANGED,
    PLAYER_NOT_AVAILABLE,
    TEAM_NOT_FOUND,
    ConflictError,
)
from .status import require_transition


@dataclass(frozen=True, slots=True)
class Statement:
    sql: str
    params: Tuple = ()
    # When set, the statement must touch at least one row or the batch fails.
    guard_code: Optional[str] = None
    guard_message: str = ""

    @property
    def bound_values(self) -> int:
        return len(self.params)


# -----------------------------------------------------------------------------
# Players / teams / money
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReassignPlayer:
    """Move a player to ``team_id``; guarded on the player still being at ``from_team_id``."""

    player_id: str
    from_team_id: Optional[str]
    team_id: Optional[str]
    wage: int
    contract_end_season: int
    morale: int

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "UPDATE players SET team_id=?, wage=?, contract_end_season=?, morale=? "
                "WHERE id=? AND team_id IS ? AND status='active';",
                (
                    self.team_id,
                    int(self.wage),
                    int(self.contract_end_season),
                    int(self.morale),
                    self.player_id,
                    self.from_team_id,
                ),
                guard_code=PLAYER_NOT_AVAILABLE,
                guard_message="player is no longer with the selling club",
            )
        ]


@dataclass(frozen=True, slots=True)
class ReleasePlayer:
    """Terminate a contract: the player becomes a free agent, guarded on still being at ``team_id``."""

    player_id: str
    team_id: str
    contract_end_season: int

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "UPDATE players SET team_id=NULL, contract_end_season=? "
                "WHERE id=? AND team_id=? AND status='active';",
                (int(self.contract_end_season), self.player_id, self.team_id),
                guard_code=PLAYER_NOT_AVAILABLE,
                guard_message="player is no longer with the releasing club",
            )
        ]


@dataclass(frozen=True, slots=True)
class AdjustBalance:
    team_id: str
    delta: int

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "UPDATE teams SET budget = budget + ?, balance = balance + ? WHERE id=?;",
                (int(self.delta), int(self.delta), self.team_id),
                guard_code=TEAM_NOT_FOUND,
                guard_message="team row missing during balance adjustment",
            )
        ]


@dataclass(frozen=True, slots=True)
class RecordTransaction:
    transaction_id: str
    save_id: str
    team_id: str
    type: str
    category: str
    amount: int
    season: int
    round: int
    description: str = ""

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "INSERT INTO transactions(id, save_id, team_id, type, category, amount, description, season, round) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    self.transaction_id,
                    self.save_id,
                    self.team_id,
                    self.type,
                    self.category,
                    int(self.amount),
                    self.description,
                    int(self.season),
                    int(self.round),
                ),
            )
        ]


@dataclass(frozen=True, slots=True)
class InsertTransferRecord:
    transfer_id: str
    save_id: str
    player_id: str
    from_team_id: Optional[str]
    to_team_id: str
    fee: int
    wage: int
    season: int
    date: str

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "INSERT INTO transfers(id, save_id, player_id, from_team_id, to_team_id, fee, wage, season, date) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    self.transfer_id,
                    self.save_id,
                    self.player_id,
                    self.from_team_id,
                    self.to_team_id,
                    int(self.fee),
                    int(self.wage),
                    int(self.season),
                    self.date,
                ),
            )
        ]


# -----------------------------------------------------------------------------
# Listings
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InsertListing:
    listing_id: str
    save_id: str
    player_id: str
    team_id: str
    asking_price: int
    status: str
    listed_round: int

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "INSERT INTO transfer_listings(id, save_id, player_id, team_id, asking_price, status, listed_round) "
                "VALUES (?, ?, ?, ?, ?, ?, ?);",
                (
                    self.listing_id,
                    self.save_id,
                    self.player_id,
                    self.team_id,
                    int(self.asking_price),
                    self.status,
                    int(self.listed_round),
                ),
            )
        ]


@dataclass(frozen=True, slots=True)
class UpdateListingPrice:
    listing_id: str
    asking_price: int

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "UPDATE transfer_listings SET asking_price=? WHERE id=?;",
                (int(self.asking_price), self.listing_id),
            )
        ]


@dataclass(frozen=True, slots=True)
class DeleteListing:
    save_id: str
    player_id: str

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "DELETE FROM transfer_listings WHERE save_id=? AND player_id=?;",
                (self.save_id, self.player_id),
            )
        ]


# -----------------------------------------------------------------------------
# Offers
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InsertOffer:
    offer_id: str
    save_id: str
    player_id: str
    seller_team_id: Optional[str]
    buyer_team_id: str
    fee: int
    wage: int
    contract_years: int
    status: str
    created_round: int
    expires_round: int

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "INSERT INTO transfer_offers("
                "id, save_id, player_id, from_team_id, to_team_id, fee, wage, contract_years, status, "
                "created_round, expires_round) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    self.offer_id,
                    self.save_id,
                    self.player_id,
                    self.seller_team_id,
                    self.buyer_team_id,
                    int(self.fee),
                    int(self.wage),
                    int(self.contract_years),
                    self.status,
                    int(self.created_round),
                    int(self.expires_round),
                ),
            )
        ]


@dataclass(frozen=True, slots=True)
class SetOfferStatus:
    """Guarded status change: applies only while the offer is in ``expected``.

    Every ``expected -> status`` pair must be in the transition table; the
    guard makes the check-and-set a single conditional update.
    """

    offer_id: str
    status: str
    expected: FrozenSet[str]
    responded_round: Optional[int] = None
    counter_fee: Optional[int] = None
    counter_wage: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.expected:
            raise ConflictError(OFFER_INVALID_TRANSITION, "guarded status update needs at least one source status")
        for src in self.expected:
            require_transition(src, self.status, offer_id=self.offer_id)

    def statements(self) -> List[Statement]:
        sources = sorted(self.expected)
        marks = ",".join("?" for _ in sources)
        sets = ["status=?"]
        params: list = [self.status]
        if self.responded_round is not None:
            sets.append("responded_round=?")
            params.append(int(self.responded_round))
        if self.counter_fee is not None:
            sets.append("counter_fee=?")
            params.append(int(self.counter_fee))
        if self.counter_wage is not None:
            sets.append("counter_wage=?")
            params.append(int(self.counter_wage))
        params.append(self.offer_id)
        params.extend(sources)
        return [
            Statement(
                f"UPDATE transfer_offers SET {', '.join(sets)} WHERE id=? AND status IN ({marks});",
                tuple(params),
                guard_code=OFFER_STATUS_CHANGED,
                guard_message=f"offer is no longer in {sources}",
            )
        ]


@dataclass(frozen=True, slots=True)
class UpdateOfferTerms:
    """Rewrite the terms of an open offer (live negotiation rounds)."""

    offer_id: str
    fee: int
    wage: int
    contract_years: int
    expires_round: int

    def statements(self) -> List[Statement]:
        return [
            Statement(
                "UPDATE transfer_offers SET fee=?, wage=?, contract_years=?, expires_round=?, "
                "counter_fee=NULL, counter_wage=NULL WHERE id=? AND status IN ('pending','counter');",
                (int(self.fee), int(self.wage), int(self.contract_years), int(self.expires_round), self.offer_id),
                guard_code=OFFER_STATUS_CHANGED,
                guard_message="offer is no longer open",
            )
        ]


@dataclass(frozen=True, slots=True)
class CancelCompetingOffers:
    """Close every other open offer on a player that is no longer available."""

    save_id: str
    player_id: str
    responded_round: int
    except_offer_id: Optional[str] = None

    def statements(self) -> List[Statement]:
        require_transition("pending", "cancelled")
        require_transition("counter", "cancelled")
        return [
            Statement(
                "UPDATE transfer_offers SET status='cancelled', responded_round=? "
                "WHERE save_id=? AND player_id=? AND status IN ('pending','counter') AND id IS NOT ?;",
                (int(self.responded_round), self.save_id, self.player_id, self.except_offer_id),
            )
        ]


@dataclass(frozen=True, slots=True)
class ExpireOffers:
    save_id: str
    current_round: int

    def statements(self) -> List[Statement]:
        require_transition("pending", "expired")
        require_transition("counter", "expired")
        return [
            Statement(
                "UPDATE transfer_offers SET status='expired', responded_round=? "
                "WHERE save_id=? AND status IN ('pending','counter') AND expires_round < ?;",
                (int(self.current_round), self.save_id, int(self.current_round)),
            )
        ]


MutationIntent = Union[
    ReassignPlayer,
    ReleasePlayer,
    AdjustBalance,
    RecordTransaction,
    InsertTransferRecord,
    InsertListing,
    UpdateListingPrice,
    DeleteListing,
    InsertOffer,
    SetOfferStatus,
    UpdateOfferTerms,
    CancelCompetingOffers,
    ExpireOffers,
]


def render(intents: Iterable[MutationIntent]) -> List[Statement]:
    out: List[Statement] = []
    for intent in intents:
        out.extend(intent.statements())
    return out


def chunk_statements(statements: Sequence[Statement], max_bound_values: int) -> List[List[Statement]]:
    """Greedily pack statements into chunks of at most ``max_bound_values`` bound values.

    Order is preserved. A single statement larger than the limit travels alone.
    """
    limit = max(1, int(max_bound_values))
    chunks: List[List[Statement]] = []
    current: List[Statement] = []
    used = 0
    for stmt in statements:
        n = stmt.bound_values
        if current and used + n > limit:
            chunks.append(current)
            current = []
            used = 0
        current.append(stmt)
        used += n
    if current:
        chunks.append(current)
    return chunks
