from __future__ import annotations

"""Tunable knobs for the transfer market.

Everything here is plain data. Presets are derived from the default with
``dataclasses.replace`` so a new knob only needs one default.
"""

from dataclasses import dataclass, replace
from typing import Dict, Mapping, Optional


@dataclass(frozen=True, slots=True)
class TransferConfig:
    # Offer lifecycle
    offer_expiry_rounds: int = 3
    max_offers_per_team_per_round: int = 3

    # Buying
    offer_price_ratio: float = 0.9
    max_budget_spend_ratio: float = 0.85
    max_wage_allocation_ratio: float = 0.2
    buy_quality_threshold: int = -15
    base_offer_probability: float = 0.7
    allow_position_upgrades: bool = True
    upgrade_quality_threshold: int = 6
    potential_weight_for_youth: float = 0.5

    # Selling
    accept_threshold: float = 0.995
    overstaffed_accept_threshold: float = 0.8
    counter_threshold: float = 0.75
    counter_wage_premium: float = 1.1

    # Squad shape
    ideal_squad_size: int = 28
    max_squad_size_before_listing: int = 30
    max_listings_per_team_per_round: int = 3

    # Listing maintenance
    listing_churn_rounds: int = 6
    listing_markdown_every_rounds: int = 4
    listing_markdown_step: float = 0.04
    listing_markdown_floor: float = 0.75

    # AI responses to open offers
    max_ai_responses_per_round: int = 20


DEFAULT_TRANSFER_CONFIG = TransferConfig()

TRANSFER_CONFIG_PRESETS: Dict[str, TransferConfig] = {
    "low": replace(
        DEFAULT_TRANSFER_CONFIG,
        max_offers_per_team_per_round=1,
        base_offer_probability=0.4,
        buy_quality_threshold=-10,
        max_listings_per_team_per_round=2,
    ),
    "normal": DEFAULT_TRANSFER_CONFIG,
    "high": replace(
        DEFAULT_TRANSFER_CONFIG,
        max_offers_per_team_per_round=5,
        base_offer_probability=0.9,
        buy_quality_threshold=-20,
        overstaffed_accept_threshold=0.75,
        max_listings_per_team_per_round=5,
    ),
}


def get_transfer_config(name: Optional[str] = None, *, overrides: Optional[Mapping[str, object]] = None) -> TransferConfig:
    """Resolve a preset by name (unknown names fall back to ``normal``)."""
    key = str(name or "normal").strip().lower()
    cfg = TRANSFER_CONFIG_PRESETS.get(key, DEFAULT_TRANSFER_CONFIG)
    if overrides:
        cfg = replace(cfg, **dict(overrides))
    return cfg


@dataclass(frozen=True, slots=True)
class NegotiationConfig:
    """Live negotiation protocol constants."""

    max_rounds: int = 2
    hardening_step: float = 0.05
    min_improvement: float = 0.05

    # Final-round tolerance band against the effective reference.
    final_round_fee_tolerance: float = 0.90
    final_round_wage_tolerance: float = 0.70

    # Live sellers counter anything at or above this share of the effective asking price.
    reject_below_ratio: float = 0.5

    # Incoming direction: AI buyer walks when the human demand exceeds reservation * this.
    incoming_reject_above_ratio: float = 1.5

    session_ttl_seconds: float = 30 * 60.0
    sweep_interval_seconds: float = 5 * 60.0
    lock_timeout_seconds: Optional[float] = 10.0


DEFAULT_NEGOTIATION_CONFIG = NegotiationConfig()


# Storage layer per-call limit on bound values (chunking boundary for batched writes).
MAX_BOUND_VALUES_PER_CALL = 100
