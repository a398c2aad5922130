from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional

from .utils import int_mapping, safe_int


Position = Literal["GK", "DEF", "MID", "ATT"]
POSITIONS: tuple = ("GK", "DEF", "MID", "ATT")

ListingStatus = Literal["available", "contract_expiring"]

OfferStatus = Literal[
    "pending",
    "counter",
    "accepted",
    "rejected",
    "expired",
    "completed",
    "cancelled",
]
OPEN_OFFER_STATUSES: tuple = ("pending", "counter")

MarketAction = Literal["accept", "reject", "counter"]
AIResponseAction = Literal["accept", "reject", "counter", "walkaway"]
NegotiationAction = Literal["offer", "accept", "walkaway"]
IncomingAction = Literal["accept", "reject", "counter"]

TransactionType = Literal["income", "expense"]


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _row_get(row: Mapping[str, Any], key: str, default: Any = None) -> Any:
    # sqlite3.Row supports mapping access but not .get()
    try:
        return row[key]
    except (KeyError, IndexError):
        return default


@dataclass(frozen=True, slots=True)
class PlayerView:
    """Valuation-relevant view of a player row."""

    player_id: str
    position: str
    age: int
    potential: int
    attributes: Dict[str, int]
    contract_end_season: int
    wage: int
    market_value: int
    status: str = "active"
    team_id: Optional[str] = None
    name: str = ""
    morale: int = 70
    season_minutes: int = 0

    @property
    def is_free_agent(self) -> bool:
        return self.team_id is None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PlayerView":
        return cls(
            player_id=str(row["id"]),
            position=str(_row_get(row, "position") or "").upper(),
            age=safe_int(_row_get(row, "age"), 25),
            potential=safe_int(_row_get(row, "potential"), 0),
            attributes=int_mapping(_row_get(row, "attributes_json")),
            contract_end_season=safe_int(_row_get(row, "contract_end_season"), 0),
            wage=max(0, safe_int(_row_get(row, "wage"), 0)),
            market_value=max(0, safe_int(_row_get(row, "market_value"), 0)),
            status=str(_row_get(row, "status") or "active"),
            team_id=_opt_str(_row_get(row, "team_id")),
            name=str(_row_get(row, "name") or ""),
            morale=safe_int(_row_get(row, "morale"), 70),
            season_minutes=max(0, safe_int(_row_get(row, "season_minutes"), 0)),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.player_id,
            "name": self.name,
            "position": self.position,
            "age": int(self.age),
            "potential": int(self.potential),
            "contract_end_season": int(self.contract_end_season),
            "wage": int(self.wage),
            "market_value": int(self.market_value),
            "season_minutes": int(self.season_minutes),
            "team_id": self.team_id,
        }


@dataclass(frozen=True, slots=True)
class TeamView:
    team_id: str
    name: str
    budget: int
    wage_budget: int
    reputation: int
    balance: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TeamView":
        return cls(
            team_id=str(row["id"]),
            name=str(_row_get(row, "name") or ""),
            budget=safe_int(_row_get(row, "budget"), 0),
            wage_budget=safe_int(_row_get(row, "wage_budget"), 0),
            reputation=safe_int(_row_get(row, "reputation"), 50),
            balance=safe_int(_row_get(row, "balance"), 0),
        )


@dataclass(frozen=True, slots=True)
class Listing:
    listing_id: str
    save_id: str
    player_id: str
    team_id: str
    asking_price: int
    status: str
    listed_round: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Listing":
        return cls(
            listing_id=str(row["id"]),
            save_id=str(row["save_id"]),
            player_id=str(row["player_id"]),
            team_id=str(row["team_id"]),
            asking_price=safe_int(row["asking_price"], 0),
            status=str(row["status"]),
            listed_round=safe_int(row["listed_round"], 0),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.listing_id,
            "player_id": self.player_id,
            "team_id": self.team_id,
            "asking_price": int(self.asking_price),
            "status": self.status,
            "listed_round": int(self.listed_round),
        }


@dataclass(frozen=True, slots=True)
class Offer:
    offer_id: str
    save_id: str
    player_id: str
    seller_team_id: Optional[str]
    buyer_team_id: str
    fee: int
    wage: int
    contract_years: int
    status: str
    counter_fee: Optional[int]
    counter_wage: Optional[int]
    created_round: int
    expires_round: int
    responded_round: Optional[int]

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_OFFER_STATUSES

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Offer":
        cf = _row_get(row, "counter_fee")
        cw = _row_get(row, "counter_wage")
        rr = _row_get(row, "responded_round")
        return cls(
            offer_id=str(row["id"]),
            save_id=str(row["save_id"]),
            player_id=str(row["player_id"]),
            seller_team_id=_opt_str(_row_get(row, "from_team_id")),
            buyer_team_id=str(row["to_team_id"]),
            fee=safe_int(row["fee"], 0),
            wage=safe_int(row["wage"], 0),
            contract_years=safe_int(row["contract_years"], 1),
            status=str(row["status"]),
            counter_fee=None if cf is None else safe_int(cf, 0),
            counter_wage=None if cw is None else safe_int(cw, 0),
            created_round=safe_int(row["created_round"], 0),
            expires_round=safe_int(row["expires_round"], 0),
            responded_round=None if rr is None else safe_int(rr, 0),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.offer_id,
            "player_id": self.player_id,
            "from_team_id": self.seller_team_id,
            "to_team_id": self.buyer_team_id,
            "fee": int(self.fee),
            "wage": int(self.wage),
            "contract_years": int(self.contract_years),
            "status": self.status,
            "counter_fee": self.counter_fee,
            "counter_wage": self.counter_wage,
            "created_round": int(self.created_round),
            "expires_round": int(self.expires_round),
            "responded_round": self.responded_round,
        }


# -----------------------------------------------------------------------------
# Policy decisions
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SellDecision:
    action: MarketAction
    amount: Optional[int] = None
    wage: Optional[int] = None
    reason: str = ""


@dataclass(frozen=True, slots=True)
class BuyDecision:
    will_buy: bool
    offer_amount: Optional[int] = None
    offered_wage: Optional[int] = None
    contract_years: Optional[int] = None
    reason: str = ""


@dataclass(frozen=True, slots=True)
class FreeAgentDecision:
    action: MarketAction
    wage: Optional[int] = None
    reason: str = ""


# -----------------------------------------------------------------------------
# Negotiation / round results
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AIResponse:
    action: AIResponseAction
    counter_fee: Optional[int] = None
    counter_wage: Optional[int] = None
    reason: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"action": self.action}
        if self.counter_fee is not None:
            out["counter_fee"] = int(self.counter_fee)
        if self.counter_wage is not None:
            out["counter_wage"] = int(self.counter_wage)
        if self.reason:
            out["reason"] = self.reason
        return out


@dataclass(frozen=True, slots=True)
class CompletedTransfer:
    transfer_id: str
    final_fee: int
    final_wage: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "transfer_id": self.transfer_id,
            "final_fee": int(self.final_fee),
            "final_wage": int(self.final_wage),
        }


@dataclass(frozen=True, slots=True)
class NegotiationResult:
    negotiation_id: str
    round: int
    max_rounds: int
    ai_response: AIResponse
    can_counter: bool
    offer_id: Optional[str] = None
    completed: Optional[CompletedTransfer] = None

    @property
    def is_terminal(self) -> bool:
        return self.ai_response.action != "counter"

    def to_payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "negotiation_id": self.negotiation_id,
            "round": int(self.round),
            "max_rounds": int(self.max_rounds),
            "ai_response": self.ai_response.to_payload(),
            "can_counter": bool(self.can_counter),
            "offer_id": self.offer_id,
        }
        if self.completed is not None:
            out["completed"] = self.completed.to_payload()
        return out


@dataclass(frozen=True, slots=True)
class OfferResponse:
    """Outcome of making or responding to a (non-negotiated) offer."""

    offer_id: str
    status: str
    counter_fee: Optional[int] = None
    counter_wage: Optional[int] = None
    transfer_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "offer_id": self.offer_id,
            "status": self.status,
            "counter_fee": self.counter_fee,
            "counter_wage": self.counter_wage,
            "transfer_id": self.transfer_id,
        }


@dataclass(frozen=True, slots=True)
class ReleaseQuote:
    """Compensation a club owes when it ends a contract early."""

    player_id: str
    fee: int
    remaining_years: int
    remaining_rounds: int
    mutual_termination: bool = False

    @property
    def has_fee(self) -> bool:
        return self.fee > 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "fee": int(self.fee),
            "has_fee": self.has_fee,
            "remaining_years": int(self.remaining_years),
            "remaining_rounds": int(self.remaining_rounds),
            "mutual_termination": bool(self.mutual_termination),
        }


@dataclass
class RoundResult:
    expired_offers: int = 0
    offer_responses: int = 0
    new_listings: int = 0
    removed_listings: int = 0
    new_offers: int = 0
    free_agent_signings: int = 0
    released_players: int = 0
    completed_transfers: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "expired_offers": int(self.expired_offers),
            "offer_responses": int(self.offer_responses),
            "new_listings": int(self.new_listings),
            "removed_listings": int(self.removed_listings),
            "new_offers": int(self.new_offers),
            "free_agent_signings": int(self.free_agent_signings),
            "released_players": int(self.released_players),
            "completed_transfers": list(self.completed_transfers),
        }
