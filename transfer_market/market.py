from __future__ import annotations

"""Per-round AI transfer processing.

Steps run in a fixed order because each reads what the previous one wrote:

1. expire stale offers
2. AI clubs answer open offers (sellers) and counters (buyers)
3. listing maintenance, then new listings
4. AI bids on open listings
5. at most one free-agent signing per AI club
6. at most one release to free agency per AI club (joins next round's pool)

Writes inside a step go out as one chunked batch. Chunks are individually
atomic; a failure after the first chunk aborts the round with
ChunkedBatchError and the whole round must be re-run. Every step re-reads
the state it deduplicates against right before building its batch.
"""

import logging
import random
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set, Tuple

from .config import TransferConfig
from .context import load_save
from .errors import ChunkedBatchError, ConflictError
from .expiry import sweep_expired_offers
from .ledger import accept_and_complete, build_completion_intents, build_release_intents
from .mutations import (
    DeleteListing,
    InsertListing,
    InsertOffer,
    MutationIntent,
    SetOfferStatus,
    UpdateListingPrice,
)
from .policy import (
    PositionNeed,
    buy_decision,
    free_agent_decision,
    free_agent_interest,
    position_needs,
    select_player_to_release,
    select_players_to_list,
    sell_decision,
    squad_average_overall,
)
from .types import Offer, PlayerView, RoundResult, TeamView
from .utils import new_id
from .valuation import asking_price, expected_free_agent_wage, listing_status, overall

if TYPE_CHECKING:
    from league_repo import LeagueRepo

logger = logging.getLogger(__name__)

FREE_AGENT_ATTEMPTS_PER_CLUB = 3


def round_rng(save_id: str, season: int, round: int) -> random.Random:
    """Per-round RNG: a retried round replays the same club order."""
    return random.Random(f"{save_id}:{int(season)}:{int(round)}")


def _apply_step(repo: "LeagueRepo", step: str, intents: Sequence[MutationIntent], *, save_id: str, round: int) -> None:
    if not intents:
        return
    try:
        repo.apply_intents_chunked(intents)
    except ChunkedBatchError as exc:
        logger.error(
            "AI_TRANSFER_BATCH_FAILED save=%s round=%s step=%s committed=%s/%s",
            save_id,
            round,
            step,
            exc.committed_chunks,
            exc.total_chunks,
            exc_info=True,
        )
        raise


def _wage_room(team: TeamView, bills: Dict[str, int]) -> int:
    return max(0, int(team.wage_budget) - int(bills.get(team.team_id, 0)))


# -----------------------------------------------------------------------------
# Step 2: answers to open offers
# -----------------------------------------------------------------------------


def _respond_to_offers(
    repo: "LeagueRepo",
    save_id: str,
    human_team_id: Optional[str],
    season: int,
    round: int,
    cfg: TransferConfig,
    result: RoundResult,
) -> None:
    offers = repo.list_offers(save_id, statuses=("pending", "counter"))
    if not offers:
        return

    teams = {t.team_id: t for t in repo.list_teams(save_id)}
    budgets = {tid: t.budget for tid, t in teams.items()}
    squads = repo.get_squads(save_id)
    players = repo.get_players(save_id, [o.player_id for o in offers])

    # Seller side: pending bids on AI-owned players, best fee first per player.
    to_sellers = [
        o
        for o in offers
        if o.status == "pending" and o.seller_team_id is not None and o.seller_team_id != human_team_id
    ]
    # Buyer side: AI buyers holding a counter.
    to_buyers = [o for o in offers if o.status == "counter" and o.buyer_team_id != human_team_id]

    sold: Set[str] = set()
    intents: List[MutationIntent] = []
    handled = 0
    limit = max(0, int(cfg.max_ai_responses_per_round))

    def _complete(offer: Offer, fee: int, wage: int) -> None:
        try:
            transfer_id = accept_and_complete(repo, offer, season=season, round=round, fee=fee, wage=wage)
        except ConflictError:
            logger.warning("AI_OFFER_COMPLETION_SKIPPED save=%s offer=%s", save_id, offer.offer_id, exc_info=True)
            return
        sold.add(offer.player_id)
        budgets[offer.buyer_team_id] = budgets.get(offer.buyer_team_id, 0) - fee
        if offer.seller_team_id is not None:
            budgets[offer.seller_team_id] = budgets.get(offer.seller_team_id, 0) + fee
        result.completed_transfers.append(transfer_id)

    for offer in sorted(to_sellers, key=lambda o: (o.player_id, -o.fee, o.offer_id)):
        if handled >= limit:
            break
        player = players.get(offer.player_id)
        if player is None or offer.player_id in sold or player.team_id != offer.seller_team_id:
            continue
        handled += 1

        if offer.fee > budgets.get(offer.buyer_team_id, 0):
            intents.append(SetOfferStatus(offer.offer_id, "rejected", frozenset({"pending"}), responded_round=round))
            continue

        listing = repo.get_listing(save_id, offer.player_id)
        asking = listing.asking_price if listing is not None else asking_price(player, season)
        squad_size = len(squads.get(offer.seller_team_id, []))
        decision = sell_decision(asking, offer.fee, offer.wage, squad_size, player, season, cfg=cfg)
        if decision.action == "accept":
            _complete(offer, offer.fee, offer.wage)
        elif decision.action == "counter":
            intents.append(
                SetOfferStatus(
                    offer.offer_id,
                    "counter",
                    frozenset({"pending"}),
                    responded_round=round,
                    counter_fee=decision.amount,
                    counter_wage=decision.wage,
                )
            )
        else:
            intents.append(SetOfferStatus(offer.offer_id, "rejected", frozenset({"pending"}), responded_round=round))

    for offer in to_buyers:
        if handled >= limit:
            break
        player = players.get(offer.player_id)
        if player is None or offer.player_id in sold or player.team_id != offer.seller_team_id:
            continue
        handled += 1
        fee = int(offer.counter_fee if offer.counter_fee is not None else offer.fee)
        wage = int(offer.counter_wage if offer.counter_wage is not None else offer.wage)
        budget = budgets.get(offer.buyer_team_id, 0)
        if fee <= int(budget * cfg.max_budget_spend_ratio):
            _complete(offer, fee, wage)
        else:
            intents.append(SetOfferStatus(offer.offer_id, "cancelled", frozenset({"counter"}), responded_round=round))

    result.offer_responses = handled
    # A completed sale already cancelled every other open offer on that player.
    player_of = {o.offer_id: o.player_id for o in offers}
    intents = [i for i in intents if player_of.get(i.offer_id) not in sold]
    _apply_step(repo, "responses", intents, save_id=save_id, round=round)


# -----------------------------------------------------------------------------
# Step 3: listings
# -----------------------------------------------------------------------------


def _marked_down(base: int, steps: int, cfg: TransferConfig) -> int:
    floor = int(round(base * cfg.listing_markdown_floor))
    return max(floor, int(round(base * (1.0 - cfg.listing_markdown_step * steps))))


def _maintain_listings(
    repo: "LeagueRepo",
    save_id: str,
    human_team_id: Optional[str],
    season: int,
    round: int,
    cfg: TransferConfig,
    result: RoundResult,
) -> Set[str]:
    """Churn stale AI listings and mark the rest down. Returns churned player ids."""
    listings = [l for l in repo.list_listings(save_id) if l.team_id != human_team_id]
    if not listings:
        return set()

    offers_since = repo.offer_counts_since(save_id, listings)
    players = repo.get_players(save_id, [l.player_id for l in listings])
    churned: Set[str] = set()
    intents: List[MutationIntent] = []

    for listing in listings:
        age = int(round) - int(listing.listed_round)
        player = players.get(listing.player_id)
        if player is None or player.team_id != listing.team_id:
            intents.append(DeleteListing(save_id, listing.player_id))
            churned.add(listing.player_id)
            continue
        if age >= cfg.listing_churn_rounds and offers_since.get(listing.player_id, 0) == 0:
            intents.append(DeleteListing(save_id, listing.player_id))
            churned.add(listing.player_id)
            continue

        every = max(1, int(cfg.listing_markdown_every_rounds))
        steps = age // every
        if steps <= 0:
            continue
        marked = _marked_down(asking_price(player, season), steps, cfg)
        if marked != listing.asking_price:
            intents.append(UpdateListingPrice(listing.listing_id, marked))

    result.removed_listings = len(churned)
    _apply_step(repo, "listing_maintenance", intents, save_id=save_id, round=round)
    return churned


def _create_listings(
    repo: "LeagueRepo",
    save_id: str,
    human_team_id: Optional[str],
    season: int,
    round: int,
    cfg: TransferConfig,
    result: RoundResult,
    skip: Set[str],
) -> None:
    squads = repo.get_squads(save_id)
    listed = repo.listed_player_ids(save_id)
    intents: List[MutationIntent] = []

    for team_id in sorted(squads):
        if team_id == human_team_id:
            continue
        for player in select_players_to_list(squads[team_id], season, cfg=cfg):
            if player.player_id in listed or player.player_id in skip:
                continue
            intents.append(
                InsertListing(
                    listing_id=new_id(),
                    save_id=save_id,
                    player_id=player.player_id,
                    team_id=team_id,
                    asking_price=asking_price(player, season),
                    status=listing_status(player, season),
                    listed_round=round,
                )
            )
            listed.add(player.player_id)

    result.new_listings = len(intents)
    _apply_step(repo, "listings", intents, save_id=save_id, round=round)


# -----------------------------------------------------------------------------
# Step 4: AI bids
# -----------------------------------------------------------------------------


def _bump_need(needs: Dict[str, PositionNeed], player: PlayerView) -> None:
    need = needs.get(player.position)
    if need is None:
        return
    needs[player.position] = PositionNeed(
        count=need.count + 1,
        ideal=need.ideal,
        best_overall=max(need.best_overall, overall(player)),
    )


def _make_offers(
    repo: "LeagueRepo",
    save_id: str,
    human_team_id: Optional[str],
    season: int,
    round: int,
    cfg: TransferConfig,
    rng: random.Random,
    result: RoundResult,
) -> None:
    listings = repo.list_listings(save_id)
    if not listings:
        return
    open_pairs: Set[Tuple[str, str]] = repo.open_offer_pairs(save_id)
    players = repo.get_players(save_id, [l.player_id for l in listings])
    squads = repo.get_squads(save_id)
    bills = repo.wage_bills(save_id)
    teams = [t for t in repo.list_teams(save_id) if t.team_id != human_team_id]
    rng.shuffle(teams)

    intents: List[MutationIntent] = []
    for team in teams:
        squad = squads.get(team.team_id, [])
        needs = position_needs(squad)
        avg = squad_average_overall(squad)
        budget_left = int(team.budget)
        wage_room = _wage_room(team, bills)
        made = 0
        for listing in listings:
            if made >= cfg.max_offers_per_team_per_round:
                break
            if listing.team_id == team.team_id or (listing.player_id, team.team_id) in open_pairs:
                continue
            player = players.get(listing.player_id)
            if player is None or player.team_id != listing.team_id:
                continue
            decision = buy_decision(
                player,
                listing.asking_price,
                budget_left,
                wage_room,
                avg,
                needs,
                team.reputation,
                cfg,
            )
            if not decision.will_buy or rng.random() >= cfg.base_offer_probability:
                continue
            fee = int(decision.offer_amount or 0)
            wage = int(decision.offered_wage or 0)
            intents.append(
                InsertOffer(
                    offer_id=new_id(),
                    save_id=save_id,
                    player_id=player.player_id,
                    seller_team_id=listing.team_id,
                    buyer_team_id=team.team_id,
                    fee=fee,
                    wage=wage,
                    contract_years=int(decision.contract_years or 1),
                    status="pending",
                    created_round=round,
                    expires_round=round + cfg.offer_expiry_rounds,
                )
            )
            open_pairs.add((player.player_id, team.team_id))
            budget_left -= fee
            wage_room -= wage
            _bump_need(needs, player)
            made += 1

    result.new_offers = len(intents)
    _apply_step(repo, "offers", intents, save_id=save_id, round=round)


# -----------------------------------------------------------------------------
# Step 5: free agents
# -----------------------------------------------------------------------------


def _sign_free_agents(
    repo: "LeagueRepo",
    save_id: str,
    human_team_id: Optional[str],
    season: int,
    round: int,
    cfg: TransferConfig,
    rng: random.Random,
    result: RoundResult,
) -> None:
    free_agents = sorted(repo.list_free_agents(save_id), key=lambda p: (-overall(p), p.player_id))
    if not free_agents:
        return
    squads = repo.get_squads(save_id)
    bills = repo.wage_bills(save_id)
    teams = [t for t in repo.list_teams(save_id) if t.team_id != human_team_id]
    # Fair shuffle: no club gets first pick every round.
    rng.shuffle(teams)

    signed: Set[str] = set()
    intents: List[MutationIntent] = []
    for team in teams:
        squad = squads.get(team.team_id, [])
        needs = position_needs(squad)
        avg = squad_average_overall(squad)
        room = _wage_room(team, bills)
        attempts = 0
        for player in free_agents:
            if player.player_id in signed:
                continue
            interest = free_agent_interest(player, room, avg, needs, team.reputation, cfg=cfg)
            if not interest.will_buy:
                continue
            attempts += 1
            years = int(interest.contract_years or 1)
            wage = int(interest.offered_wage or 0)
            answer = free_agent_decision(expected_free_agent_wage(player, years), wage, team.reputation, 0)
            if answer.action == "accept":
                offer = Offer(
                    offer_id=new_id(),
                    save_id=save_id,
                    player_id=player.player_id,
                    seller_team_id=None,
                    buyer_team_id=team.team_id,
                    fee=0,
                    wage=wage,
                    contract_years=years,
                    status="accepted",
                    counter_fee=None,
                    counter_wage=None,
                    created_round=round,
                    expires_round=round + cfg.offer_expiry_rounds,
                    responded_round=round,
                )
                transfer_id = new_id()
                intents.append(
                    InsertOffer(
                        offer_id=offer.offer_id,
                        save_id=save_id,
                        player_id=player.player_id,
                        seller_team_id=None,
                        buyer_team_id=team.team_id,
                        fee=0,
                        wage=wage,
                        contract_years=years,
                        status="accepted",
                        created_round=round,
                        expires_round=offer.expires_round,
                    )
                )
                intents.extend(build_completion_intents(offer, player, season=season, round=round, transfer_id=transfer_id))
                signed.add(player.player_id)
                result.completed_transfers.append(transfer_id)
                break
            if attempts >= FREE_AGENT_ATTEMPTS_PER_CLUB:
                break

    result.free_agent_signings = len(signed)
    _apply_step(repo, "free_agents", intents, save_id=save_id, round=round)


# -----------------------------------------------------------------------------
# Step 6: releases
# -----------------------------------------------------------------------------


def _release_players(
    repo: "LeagueRepo",
    save_id: str,
    human_team_id: Optional[str],
    season: int,
    round: int,
    result: RoundResult,
) -> None:
    squads = repo.get_squads(save_id)
    listed = repo.listed_player_ids(save_id)
    intents: List[MutationIntent] = []
    released = 0

    for team in sorted(repo.list_teams(save_id), key=lambda t: t.team_id):
        if team.team_id == human_team_id:
            continue
        pick = select_player_to_release(squads.get(team.team_id, []), team.budget, season, round, exclude=listed)
        if pick is None:
            continue
        player, quote = pick
        intents.extend(build_release_intents(save_id, player, team.team_id, quote, season=season, round=round))
        released += 1

    result.released_players = released
    _apply_step(repo, "releases", intents, save_id=save_id, round=round)


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------


def process_ai_transfers(
    repo: "LeagueRepo",
    save_id: str,
    human_team_id: Optional[str],
    season: int,
    round: int,
    config: Optional[TransferConfig] = None,
    *,
    rng: Optional[random.Random] = None,
) -> RoundResult:
    """Run one round of AI market activity for ``save_id``."""
    cfg = config or load_save(repo, save_id).transfer_config
    rng = rng or round_rng(save_id, season, round)
    result = RoundResult()

    result.expired_offers = sweep_expired_offers(repo, save_id, round)
    _respond_to_offers(repo, save_id, human_team_id, season, round, cfg, result)
    churned = _maintain_listings(repo, save_id, human_team_id, season, round, cfg, result)
    _create_listings(repo, save_id, human_team_id, season, round, cfg, result, churned)
    _make_offers(repo, save_id, human_team_id, season, round, cfg, rng, result)
    _sign_free_agents(repo, save_id, human_team_id, season, round, cfg, rng, result)
    _release_players(repo, save_id, human_team_id, season, round, result)

    logger.info(
        "AI_TRANSFER_ROUND_SUMMARY save=%s season=%s round=%s expired=%s responses=%s listings=%s "
        "delisted=%s offers=%s signings=%s released=%s completed=%s",
        save_id,
        season,
        round,
        result.expired_offers,
        result.offer_responses,
        result.new_listings,
        result.removed_listings,
        result.new_offers,
        result.free_agent_signings,
        result.released_players,
        len(result.completed_transfers),
    )
    return result
