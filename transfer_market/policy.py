from __future__ import annotations

"""AI decision policies (pure, total).

Each function returns a decision for every input it is given; missing
optional context falls back to explicit defaults instead of raising.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import DEFAULT_TRANSFER_CONFIG, TransferConfig
from .types import BuyDecision, FreeAgentDecision, PlayerView, ReleaseQuote, SellDecision
from .valuation import (
    IDEAL_POSITION_COUNTS,
    LOW_USE_UTILIZATION,
    MIN_ACCEPTABLE_WAGE_RATIO,
    free_agent_contract_years,
    overall,
    release_compensation,
    remaining_contract_years,
    utilization,
    wage_demand,
)


@dataclass(frozen=True, slots=True)
class PositionNeed:
    count: int
    ideal: int
    best_overall: int = 0

    @property
    def short(self) -> bool:
        return self.count < self.ideal

    @property
    def surplus(self) -> int:
        return max(0, self.count - self.ideal)


def position_needs(squad: Iterable[PlayerView]) -> Dict[str, PositionNeed]:
    counts: Dict[str, int] = {pos: 0 for pos in IDEAL_POSITION_COUNTS}
    best: Dict[str, int] = {pos: 0 for pos in IDEAL_POSITION_COUNTS}
    for p in squad:
        pos = p.position
        if pos not in counts:
            continue
        counts[pos] += 1
        best[pos] = max(best[pos], overall(p))
    return {
        pos: PositionNeed(count=counts[pos], ideal=ideal, best_overall=best[pos])
        for pos, ideal in IDEAL_POSITION_COUNTS.items()
    }


def squad_average_overall(squad: Sequence[PlayerView]) -> int:
    if not squad:
        return 0
    return int(round(sum(overall(p) for p in squad) / len(squad)))


def _need_for(position: str, needs: Optional[Mapping[str, PositionNeed]]) -> PositionNeed:
    ideal = IDEAL_POSITION_COUNTS.get(position, 0)
    if not needs:
        return PositionNeed(count=0, ideal=ideal)
    return needs.get(position) or PositionNeed(count=0, ideal=ideal)


# -----------------------------------------------------------------------------
# Selling
# -----------------------------------------------------------------------------


def sell_decision(
    asking_price: int,
    offer_fee: int,
    offer_wage: int,
    squad_size: Optional[int],
    player: PlayerView,
    season: int,
    *,
    cfg: TransferConfig = DEFAULT_TRANSFER_CONFIG,
    reject_below: Optional[float] = None,
) -> SellDecision:
    """Seller's answer to a bid.

    ``reject_below`` overrides the counter floor (live negotiations counter
    lower bids than the AI-vs-AI market does).
    """
    asking = max(0, int(asking_price))
    fee = max(0, int(offer_fee))
    size = int(squad_size or 0)

    ratio = (fee / asking) if asking > 0 else 1.0
    if ratio >= cfg.accept_threshold:
        return SellDecision(action="accept", reason="MEETS_ASKING_PRICE")

    # Surplus players and expiring contracts are cheaper to let go.
    overstaffed = size > cfg.ideal_squad_size
    expiring = remaining_contract_years(player, season) <= 1
    eager = overstaffed or expiring
    if eager and ratio >= cfg.overstaffed_accept_threshold:
        return SellDecision(action="accept", reason="SURPLUS_PLAYER" if overstaffed else "CONTRACT_EXPIRING")

    floor = cfg.counter_threshold if reject_below is None else float(reject_below)
    if ratio < floor:
        return SellDecision(action="reject", reason="OFFER_TOO_LOW")

    target = asking * cfg.overstaffed_accept_threshold if eager else float(asking)
    amount = int(round((fee + target) / 2.0))
    amount = max(amount, fee + 1)
    counter_wage = max(int(offer_wage), int(round(player.wage * cfg.counter_wage_premium)))
    return SellDecision(action="counter", amount=amount, wage=counter_wage, reason="COUNTER_TOWARDS_ASKING")


# -----------------------------------------------------------------------------
# Buying
# -----------------------------------------------------------------------------


def _contract_years_for_purchase(age: int) -> int:
    if age < 25:
        return 4
    if age < 30:
        return 3
    return 2


def effective_rating(player: PlayerView, *, cfg: TransferConfig = DEFAULT_TRANSFER_CONFIG) -> float:
    ovr = overall(player)
    if int(player.age) < 25:
        return ovr + max(0, int(player.potential) - ovr) * cfg.potential_weight_for_youth
    return float(ovr)


def buy_decision(
    player: PlayerView,
    asking_price: int,
    budget: int,
    wage_budget: int,
    squad_avg_overall: int,
    position_needs: Optional[Mapping[str, PositionNeed]],
    reputation: int,
    config: TransferConfig = DEFAULT_TRANSFER_CONFIG,
) -> BuyDecision:
    """Whether an AI club bids on a listed player, and on what terms.

    ``wage_budget`` is the buyer's *remaining* wage room. The proposed fee
    never exceeds ``budget`` and the wage never exceeds ``wage_budget``.
    """
    cfg = config
    rating = effective_rating(player, cfg=cfg)
    need = _need_for(player.position, position_needs)

    upgrade = cfg.allow_position_upgrades and rating >= need.best_overall + cfg.upgrade_quality_threshold
    if not need.short and not upgrade:
        return BuyDecision(will_buy=False, reason="NO_POSITION_NEED")

    if rating < int(squad_avg_overall or 0) + cfg.buy_quality_threshold:
        return BuyDecision(will_buy=False, reason="BELOW_SQUAD_QUALITY")

    budget_i = max(0, int(budget))
    fee_cap = min(budget_i, int(budget_i * cfg.max_budget_spend_ratio))
    asking = max(0, int(asking_price))
    if asking > fee_cap:
        return BuyDecision(will_buy=False, reason="FEE_UNAFFORDABLE")

    room = max(0, int(wage_budget))
    wage = wage_demand(player, reputation)
    if room <= 0 or wage > room * cfg.max_wage_allocation_ratio:
        return BuyDecision(will_buy=False, reason="WAGE_UNAFFORDABLE")

    offer = min(int(round(asking * cfg.offer_price_ratio)), fee_cap)
    return BuyDecision(
        will_buy=True,
        offer_amount=max(0, offer),
        offered_wage=min(wage, room),
        contract_years=_contract_years_for_purchase(int(player.age)),
        reason="UPGRADE" if not need.short else "POSITION_NEED",
    )


FREE_AGENT_QUALITY_SLACK = 3
FREE_AGENT_WAGE_ALLOCATION_RATIO = 0.1


def free_agent_interest(
    player: PlayerView,
    wage_budget: int,
    squad_avg_overall: int,
    position_needs: Optional[Mapping[str, PositionNeed]],
    reputation: int,
    *,
    cfg: TransferConfig = DEFAULT_TRANSFER_CONFIG,
) -> BuyDecision:
    """Club-side filter for an unattached player (no fee involved)."""
    need = _need_for(player.position, position_needs)
    if not need.short:
        return BuyDecision(will_buy=False, reason="NO_POSITION_NEED")

    if overall(player) < int(squad_avg_overall or 0) + cfg.buy_quality_threshold - FREE_AGENT_QUALITY_SLACK:
        return BuyDecision(will_buy=False, reason="BELOW_SQUAD_QUALITY")

    room = max(0, int(wage_budget))
    wage = wage_demand(player, reputation)
    if wage > room * FREE_AGENT_WAGE_ALLOCATION_RATIO:
        return BuyDecision(will_buy=False, reason="WAGE_UNAFFORDABLE")

    return BuyDecision(
        will_buy=True,
        offer_amount=0,
        offered_wage=wage,
        contract_years=free_agent_contract_years(int(player.age)),
        reason="POSITION_NEED",
    )


# -----------------------------------------------------------------------------
# Free agents
# -----------------------------------------------------------------------------

FREE_AGENT_REJECT_BELOW = 0.5
BIG_CLUB_REPUTATION = 70
BIG_CLUB_PATIENCE = 0.05


def free_agent_decision(
    expected_wage: int,
    offered_wage: int,
    reputation: int,
    negotiation_round: int,
    *,
    max_rounds: int = 2,
    final_round_tolerance: float = 0.70,
) -> FreeAgentDecision:
    """Player-side answer to a wage offer.

    At or past ``max_rounds`` the answer is forced to accept/reject using
    ``final_round_tolerance``.
    """
    expected = max(0, int(expected_wage))
    offered = max(0, int(offered_wage))
    if expected <= 0:
        return FreeAgentDecision(action="accept", reason="NO_WAGE_EXPECTATION")

    ratio = offered / expected
    if ratio >= MIN_ACCEPTABLE_WAGE_RATIO:
        return FreeAgentDecision(action="accept", reason="WAGE_ACCEPTABLE")

    if int(negotiation_round) >= int(max_rounds):
        if ratio >= final_round_tolerance:
            return FreeAgentDecision(action="accept", reason="FINAL_ROUND_WITHIN_TOLERANCE")
        return FreeAgentDecision(action="reject", reason="FINAL_ROUND_TOO_LOW")

    floor = FREE_AGENT_REJECT_BELOW
    if int(reputation or 0) >= BIG_CLUB_REPUTATION:
        floor -= BIG_CLUB_PATIENCE
    if ratio < floor:
        return FreeAgentDecision(action="reject", reason="WAGE_TOO_LOW")

    return FreeAgentDecision(action="counter", wage=int(round((offered + expected) / 2.0)), reason="COUNTER_MIDPOINT")


# -----------------------------------------------------------------------------
# Listing selection
# -----------------------------------------------------------------------------

AUTO_RENEW_MIN_OVERALL = 65
AUTO_RENEW_MAX_AGE = 33
AGING_LIST_AGE = 33
AGING_LIST_MAX_OVERALL = 60


def should_auto_renew(player: PlayerView) -> bool:
    return overall(player) >= AUTO_RENEW_MIN_OVERALL and int(player.age) < AUTO_RENEW_MAX_AGE


def select_players_to_list(
    squad: Sequence[PlayerView],
    season: int,
    *,
    cfg: TransferConfig = DEFAULT_TRANSFER_CONFIG,
) -> List[PlayerView]:
    """Players a club should put on the market this round (capped per club)."""
    picked: List[PlayerView] = []
    seen: set = set()

    def _add(p: PlayerView) -> None:
        if p.player_id not in seen:
            seen.add(p.player_id)
            picked.append(p)

    if len(squad) > cfg.max_squad_size_before_listing:
        needs = position_needs(squad)
        for pos, need in needs.items():
            if need.surplus <= 0:
                continue
            at_pos = sorted((p for p in squad if p.position == pos), key=lambda p: (overall(p), p.player_id))
            for p in at_pos[: need.surplus]:
                _add(p)

    for p in squad:
        if remaining_contract_years(p, season) <= 1 and not should_auto_renew(p):
            _add(p)

    for p in squad:
        if int(p.age) >= AGING_LIST_AGE and overall(p) < AGING_LIST_MAX_OVERALL:
            _add(p)

    return picked[: max(0, int(cfg.max_listings_per_team_per_round))]


# -----------------------------------------------------------------------------
# Releases
# -----------------------------------------------------------------------------

RELEASE_MIN_SQUAD_SIZE = 20
RELEASE_MIN_AT_POSITION = 2
RELEASE_OLD_AGE = 34
RELEASE_OLD_MAX_OVERALL = 69
RELEASE_FRINGE_GAP = 8
WAGE_PERIODS_PER_YEAR = 52
RELEASE_FEE_WAGE_SHARE = 0.9
RELEASE_FEE_BUDGET_SHARE = 0.08
RELEASE_FEE_HARD_CAP_WAGE_SHARE = 1.2
LOW_USE_RELEASE_BONUS = 20_000
OVERALL_RELEASE_WEIGHT = 200


def select_player_to_release(
    squad: Sequence[PlayerView],
    budget: int,
    season: int,
    round: int,
    *,
    exclude: Iterable[str] = (),
) -> Optional[Tuple[PlayerView, ReleaseQuote]]:
    """At most one player a club should release to free agency this round.

    Only crowded squads release. Candidates are old and declining, or fringe
    players who barely play; the compensation must stay within what the
    club can justify paying for them.
    """
    if len(squad) <= RELEASE_MIN_SQUAD_SIZE:
        return None

    skip = set(exclude)
    counts: Dict[str, int] = {}
    for p in squad:
        counts[p.position] = counts.get(p.position, 0) + 1
    avg = squad_average_overall(squad)

    scored = []
    for p in squad:
        if p.player_id in skip or int(p.contract_end_season) <= int(season):
            continue
        ovr = overall(p)
        low_use = utilization(p, round) < LOW_USE_UTILIZATION
        old_and_declining = int(p.age) >= RELEASE_OLD_AGE and ovr <= RELEASE_OLD_MAX_OVERALL
        fringe = ovr <= avg - RELEASE_FRINGE_GAP
        if not (old_and_declining or (low_use and fringe)):
            continue
        score = int(p.wage) + (LOW_USE_RELEASE_BONUS if low_use else 0) - ovr * OVERALL_RELEASE_WEIGHT
        scored.append((score, p))
    scored.sort(key=lambda sp: (-sp[0], sp[1].player_id))

    for _, p in scored:
        if counts.get(p.position, 0) <= RELEASE_MIN_AT_POSITION:
            continue
        quote = release_compensation(p, season, round)
        annual_wage = int(p.wage) * WAGE_PERIODS_PER_YEAR
        max_fee = max(annual_wage * RELEASE_FEE_WAGE_SHARE, max(0, int(budget)) * RELEASE_FEE_BUDGET_SHARE)
        if quote.fee > max_fee or quote.fee > annual_wage * RELEASE_FEE_HARD_CAP_WAGE_SHARE:
            continue
        if quote.fee > int(budget):
            continue
        return p, quote
    return None
