from __future__ import annotations

from typing import Optional

from fastapi import APIRouter

from transfer_market import service
from transfer_market.background import get_supervisor
from transfer_market.config import get_transfer_config
from transfer_market.context import load_save
from transfer_market.negotiation.service import negotiate_incoming_offer, negotiate_transfer
from app.schemas.transfers import (
    ActingTeamRequest,
    ListPlayerRequest,
    MakeOfferRequest,
    NegotiateIncomingRequest,
    NegotiateTransferRequest,
    ProcessRoundRequest,
    ReleasePlayerRequest,
    RemoveListingRequest,
    RespondOfferRequest,
)
from app.services.transfer_facade import get_db_path, transfer_repo

router = APIRouter(prefix="/api/transfers")


@router.get("/{save_id}/market")
async def api_transfer_market(save_id: str, exclude_team_id: Optional[str] = None):
    with transfer_repo() as repo:
        return {"ok": True, **service.get_market(repo, save_id, exclude_team_id)}


@router.get("/{save_id}/teams/{team_id}/listings")
async def api_team_listings(save_id: str, team_id: str):
    with transfer_repo() as repo:
        return {"ok": True, "listings": service.get_team_listings(repo, save_id, team_id)}


@router.get("/{save_id}/teams/{team_id}/offers")
async def api_team_offers(save_id: str, team_id: str):
    with transfer_repo() as repo:
        return {"ok": True, **service.get_team_offers(repo, save_id, team_id)}


@router.get("/{save_id}/history")
async def api_transfer_history(save_id: str, season: Optional[int] = None):
    with transfer_repo() as repo:
        return {"ok": True, "transfers": service.get_transfer_history(repo, save_id, season=season)}


@router.post("/{save_id}/listings")
async def api_list_player(save_id: str, req: ListPlayerRequest):
    with transfer_repo() as repo:
        listing_id = service.list_player_for_sale(
            repo,
            save_id,
            req.player_id,
            req.team_id,
            req.asking_price,
            acting_team_id=req.team_id,
        )
        return {"ok": True, "listing_id": listing_id}


@router.post("/{save_id}/listings/remove")
async def api_remove_listing(save_id: str, req: RemoveListingRequest):
    with transfer_repo() as repo:
        service.remove_listing(repo, save_id, req.player_id, req.team_id, acting_team_id=req.team_id)
        return {"ok": True}


@router.get("/{save_id}/teams/{team_id}/players/{player_id}/release-quote")
async def api_release_quote(save_id: str, team_id: str, player_id: str):
    with transfer_repo() as repo:
        quote = service.get_release_quote(repo, save_id, player_id, team_id, acting_team_id=team_id)
        return {"ok": True, **quote.to_payload()}


@router.post("/{save_id}/release")
async def api_release_player(save_id: str, req: ReleasePlayerRequest):
    with transfer_repo() as repo:
        quote = service.release_player(repo, save_id, req.player_id, req.team_id, acting_team_id=req.team_id)
        return {"ok": True, **quote.to_payload()}


@router.post("/{save_id}/offers")
async def api_make_offer(save_id: str, req: MakeOfferRequest):
    with transfer_repo() as repo:
        res = service.make_offer(
            repo,
            save_id,
            req.player_id,
            req.from_team_id,
            req.to_team_id,
            req.fee,
            req.wage,
            req.years,
            acting_team_id=req.to_team_id,
        )
        return {"ok": True, **res.to_payload()}


@router.post("/{save_id}/offers/{offer_id}/respond")
async def api_respond_offer(save_id: str, offer_id: str, req: RespondOfferRequest):
    with transfer_repo() as repo:
        res = service.respond_to_offer(
            repo,
            save_id,
            offer_id,
            req.action,
            req.counter_fee,
            req.counter_wage,
            acting_team_id=req.team_id,
        )
        return {"ok": True, **res.to_payload()}


@router.post("/{save_id}/offers/{offer_id}/accept-counter")
async def api_accept_counter(save_id: str, offer_id: str, req: ActingTeamRequest):
    with transfer_repo() as repo:
        res = service.accept_counter_offer(repo, save_id, offer_id, acting_team_id=req.team_id)
        return {"ok": True, **res.to_payload()}


@router.post("/{save_id}/offers/{offer_id}/complete")
async def api_complete_transfer(save_id: str, offer_id: str, req: ActingTeamRequest):
    with transfer_repo() as repo:
        transfer_id = service.complete_transfer(repo, save_id, offer_id, acting_team_id=req.team_id)
        return {"ok": True, "transfer_id": transfer_id}


@router.post("/{save_id}/negotiate")
async def api_negotiate_transfer(save_id: str, req: NegotiateTransferRequest):
    offer = req.offer.dict() if req.offer is not None else {}
    with transfer_repo() as repo:
        res = negotiate_transfer(
            repo,
            save_id,
            req.player_id,
            req.from_team_id,
            req.to_team_id,
            offer,
            req.negotiation_id,
            req.action,
            acting_team_id=req.to_team_id,
        )
        return {"ok": True, **res.to_payload()}


@router.post("/{save_id}/offers/{offer_id}/negotiate")
async def api_negotiate_incoming(save_id: str, offer_id: str, req: NegotiateIncomingRequest):
    counter = req.counter_offer.dict() if req.counter_offer is not None else None
    with transfer_repo() as repo:
        res = negotiate_incoming_offer(
            repo,
            save_id,
            offer_id,
            req.action,
            counter,
            req.negotiation_id,
            acting_team_id=req.team_id,
        )
        return {"ok": True, **res.to_payload()}


@router.post("/{save_id}/process-round")
async def api_process_round(save_id: str, req: ProcessRoundRequest):
    with transfer_repo() as repo:
        ctx = load_save(repo, save_id)
    season = ctx.season if req.season is None else int(req.season)
    round_no = ctx.round if req.round is None else int(req.round)
    human = req.human_team_id or ctx.human_team_id
    config = get_transfer_config(req.preset) if req.preset else None
    get_supervisor().submit(get_db_path(), save_id, human, season, round_no, config)
    return {"ok": True, **get_supervisor().status(save_id)}


@router.get("/{save_id}/process-round")
async def api_process_round_status(save_id: str):
    return {"ok": True, **get_supervisor().status(save_id)}
