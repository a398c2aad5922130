from __future__ import annotations

"""Pure negotiation round resolution (no DB I/O).

Outgoing: the human club bids, the AI seller (or the free agent) answers.
Incoming: the human club sells, the AI buyer answers the human's demand.
Both directions share the round counter, hardening and final-round rules.
"""

import math
from typing import Optional

from ..config import (
    DEFAULT_NEGOTIATION_CONFIG,
    DEFAULT_TRANSFER_CONFIG,
    NegotiationConfig,
    TransferConfig,
)
from ..policy import free_agent_decision, sell_decision
from ..types import AIResponse, PlayerView
from ..valuation import expected_free_agent_wage


def hardening_factor(round_no: int, *, cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG) -> float:
    return 1.0 + cfg.hardening_step * max(0, int(round_no))


def is_final_round(round_no: int, *, cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG) -> bool:
    return int(round_no) >= int(cfg.max_rounds)


def _raised(prev: int, new: int, step: float) -> bool:
    return new > prev and new >= prev * (1.0 + step)


def is_improvement(
    prev_fee: Optional[int],
    prev_wage: Optional[int],
    fee: int,
    wage: int,
    *,
    seller: bool = False,
    cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
) -> bool:
    """Whether a resumed offer moves by at least ``min_improvement``.

    A buyer must raise fee or wage; a seller must lower its fee demand.
    No previous value means there is nothing to improve on.
    """
    step = float(cfg.min_improvement)
    if seller:
        if not prev_fee or prev_fee <= 0:
            return True
        return fee < prev_fee and fee <= prev_fee * (1.0 - step)
    if prev_fee is None and prev_wage is None:
        return True
    return _raised(int(prev_fee or 0), int(fee), step) or _raised(int(prev_wage or 0), int(wage), step)


def minimum_next_offer(prev_fee: int, prev_wage: int, *, cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG) -> dict:
    step = 1.0 + float(cfg.min_improvement)
    return {
        "min_fee": math.ceil(int(prev_fee) * step) if prev_fee > 0 else None,
        "min_wage": math.ceil(int(prev_wage) * step) if prev_wage > 0 else None,
    }


# -----------------------------------------------------------------------------
# Outgoing
# -----------------------------------------------------------------------------


def effective_asking_price(asking: int, round_no: int, *, cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG) -> int:
    return int(round(max(0, int(asking)) * hardening_factor(round_no, cfg=cfg)))


def respond_as_seller(
    asking: int,
    round_no: int,
    fee: int,
    wage: int,
    squad_size: Optional[int],
    player: PlayerView,
    season: int,
    *,
    cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
    transfer_cfg: TransferConfig = DEFAULT_TRANSFER_CONFIG,
) -> AIResponse:
    effective = effective_asking_price(asking, round_no, cfg=cfg)
    decision = sell_decision(
        effective,
        fee,
        wage,
        squad_size,
        player,
        season,
        cfg=transfer_cfg,
        reject_below=cfg.reject_below_ratio,
    )
    if decision.action == "accept":
        return AIResponse(action="accept", reason=decision.reason)
    if decision.action == "reject":
        return AIResponse(action="reject", reason=decision.reason)

    if is_final_round(round_no, cfg=cfg):
        if fee >= effective * cfg.final_round_fee_tolerance:
            return AIResponse(action="accept", reason="FINAL_ROUND_WITHIN_TOLERANCE")
        return AIResponse(action="reject", reason="FINAL_ROUND_TOO_LOW")
    return AIResponse(action="counter", counter_fee=decision.amount, counter_wage=decision.wage, reason=decision.reason)


def expected_wage_for_round(
    player: PlayerView,
    contract_years: int,
    round_no: int,
    *,
    cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
) -> int:
    return int(round(expected_free_agent_wage(player, contract_years) * hardening_factor(round_no, cfg=cfg)))


def respond_as_free_agent(
    player: PlayerView,
    contract_years: int,
    wage: int,
    reputation: int,
    round_no: int,
    *,
    cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
) -> AIResponse:
    expected = expected_wage_for_round(player, contract_years, round_no, cfg=cfg)
    decision = free_agent_decision(
        expected,
        wage,
        reputation,
        round_no,
        max_rounds=cfg.max_rounds,
        final_round_tolerance=cfg.final_round_wage_tolerance,
    )
    if decision.action == "counter":
        return AIResponse(action="counter", counter_fee=0, counter_wage=decision.wage, reason=decision.reason)
    return AIResponse(action=decision.action, reason=decision.reason)


# -----------------------------------------------------------------------------
# Incoming
# -----------------------------------------------------------------------------


def buyer_reservation(
    asking: int,
    budget: int,
    round_no: int,
    *,
    cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
    transfer_cfg: TransferConfig = DEFAULT_TRANSFER_CONFIG,
) -> int:
    """Most an AI buyer will pay this round."""
    cap = int(max(0, int(budget)) * transfer_cfg.max_budget_spend_ratio)
    return max(0, min(cap, effective_asking_price(asking, round_no, cfg=cfg)))


def respond_as_buyer(
    reservation: int,
    demand: int,
    last_bid: int,
    round_no: int,
    *,
    cfg: NegotiationConfig = DEFAULT_NEGOTIATION_CONFIG,
) -> AIResponse:
    demand = max(0, int(demand))
    if demand <= reservation:
        return AIResponse(action="accept", reason="DEMAND_WITHIN_RESERVATION")

    if is_final_round(round_no, cfg=cfg):
        if reservation >= demand * cfg.final_round_fee_tolerance:
            return AIResponse(action="accept", reason="FINAL_ROUND_WITHIN_TOLERANCE")
        return AIResponse(action="reject", reason="FINAL_ROUND_TOO_HIGH")

    if demand > reservation * cfg.incoming_reject_above_ratio:
        return AIResponse(action="reject", reason="DEMAND_TOO_HIGH")

    bid = min(reservation, int(round((int(last_bid) + demand) / 2.0)))
    bid = max(bid, int(last_bid))
    return AIResponse(action="counter", counter_fee=bid, reason="COUNTER_MIDPOINT")
