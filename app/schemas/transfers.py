from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class ListPlayerRequest(BaseModel):
    player_id: str
    team_id: str
    asking_price: Optional[int] = Field(default=None, ge=0, le=1_000_000_000)


class RemoveListingRequest(BaseModel):
    player_id: str
    team_id: str


class OfferTerms(BaseModel):
    fee: int = Field(default=0, ge=0, le=1_000_000_000)
    wage: int = Field(..., ge=0, le=10_000_000)
    years: int = Field(..., ge=1, le=5)


class ReleasePlayerRequest(BaseModel):
    player_id: str
    team_id: str


class MakeOfferRequest(OfferTerms):
    player_id: str
    from_team_id: Optional[str] = None  # None: free agent
    to_team_id: str


class RespondOfferRequest(BaseModel):
    team_id: Optional[str] = None  # acting club
    action: Literal["accept", "reject", "counter"]
    counter_fee: Optional[int] = Field(default=None, ge=0, le=1_000_000_000)
    counter_wage: Optional[int] = Field(default=None, ge=0, le=10_000_000)


class ActingTeamRequest(BaseModel):
    team_id: Optional[str] = None


class NegotiateTransferRequest(BaseModel):
    player_id: str
    from_team_id: Optional[str] = None
    to_team_id: str
    offer: Optional[OfferTerms] = None
    negotiation_id: Optional[str] = None
    action: Optional[Literal["offer", "counter", "accept", "walkaway"]] = None


class CounterDemand(BaseModel):
    fee: int = Field(..., ge=0, le=1_000_000_000)


class NegotiateIncomingRequest(BaseModel):
    team_id: Optional[str] = None
    action: Literal["accept", "reject", "counter"]
    counter_offer: Optional[CounterDemand] = None
    negotiation_id: Optional[str] = None


class ProcessRoundRequest(BaseModel):
    human_team_id: Optional[str] = None
    season: Optional[int] = None
    round: Optional[int] = None
    preset: Optional[str] = None
