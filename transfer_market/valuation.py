from __future__ import annotations

"""Player valuation (pure functions, no DB I/O).

All three entry points are deterministic for identical inputs. The live
negotiation multiplies :func:`asking_price` by a hardening factor, so the
base value must not drift between calls.
"""

from typing import Dict, Mapping

from .types import PlayerView, ReleaseQuote


# -----------------------------------------------------------------------------
# Overall rating
# -----------------------------------------------------------------------------

POSITION_WEIGHTS: Dict[str, Dict[str, int]] = {
    "GK": {"reflexes": 3, "handling": 3, "diving": 3, "positioning": 2, "composure": 1},
    "DEF": {"tackling": 3, "heading": 2, "strength": 2, "positioning": 2, "speed": 1},
    "MID": {"passing": 3, "vision": 2, "stamina": 2, "dribbling": 1, "positioning": 1, "tackling": 1},
    "ATT": {"shooting": 3, "positioning": 2, "dribbling": 2, "speed": 2, "composure": 1},
}

DEFAULT_ATTRIBUTE = 50
DEFAULT_OVERALL = 50

# Ideal head count per position for a squad of ~28.
IDEAL_POSITION_COUNTS: Dict[str, int] = {"GK": 3, "DEF": 9, "MID": 9, "ATT": 7}


def overall_from_attributes(position: str, attributes: Mapping[str, int]) -> int:
    weights = POSITION_WEIGHTS.get(str(position or "").upper())
    if not weights:
        return DEFAULT_OVERALL
    total = 0
    weight_sum = 0
    for attr, w in weights.items():
        total += int(attributes.get(attr, DEFAULT_ATTRIBUTE)) * w
        weight_sum += w
    if weight_sum <= 0:
        return DEFAULT_OVERALL
    return int(round(total / weight_sum))


def overall(player: PlayerView) -> int:
    """Position-weighted composite of the player's attributes."""
    return overall_from_attributes(player.position, player.attributes or {})


# -----------------------------------------------------------------------------
# Asking price
# -----------------------------------------------------------------------------

YOUTH_AGE_CUTOFF = 24
YOUTH_PREMIUM = 1.25
YOUTH_POTENTIAL_STEP = 0.01
PEAK_AGE_END = 29
AGE_DECAY_PER_YEAR = 0.1
AGE_DECAY_FLOOR = 0.5
FINAL_SEASON_DISCOUNT = 0.6


def remaining_contract_years(player: PlayerView, current_season: int) -> int:
    return int(player.contract_end_season) - int(current_season)


def asking_price(player: PlayerView, current_season: int) -> int:
    """Club's asking price: market value adjusted for age, potential and contract."""
    price = float(max(0, player.market_value))
    age = int(player.age)

    if age < YOUTH_AGE_CUTOFF:
        headroom = max(0, int(player.potential) - overall(player))
        price *= YOUTH_PREMIUM + headroom * YOUTH_POTENTIAL_STEP
    elif age > PEAK_AGE_END:
        price *= max(AGE_DECAY_FLOOR, 1.0 - (age - PEAK_AGE_END) * AGE_DECAY_PER_YEAR)

    if remaining_contract_years(player, current_season) <= 1:
        price *= FINAL_SEASON_DISCOUNT

    return max(0, int(round(price)))


# -----------------------------------------------------------------------------
# Wages
# -----------------------------------------------------------------------------

WAGE_BASE = 10_000
WAGE_YOUTH_DISCOUNT = 0.85
WAGE_VETERAN_PREMIUM = 1.1
NEUTRAL_REPUTATION = 50
REPUTATION_PREMIUM_PER_POINT = 0.004

UNEMPLOYMENT_FACTOR = 0.7
MIN_ACCEPTABLE_WAGE_RATIO = 0.85

# Shorter deals command a premium, longer ones a discount.
CONTRACT_LENGTH_MULTIPLIERS: Dict[int, float] = {1: 1.10, 2: 1.05, 3: 1.00, 4: 0.97, 5: 0.95}


def wage_demand(player: PlayerView, buyer_reputation: int) -> int:
    """Weekly wage the player asks from a club with ``buyer_reputation``."""
    ovr = overall(player)
    wage = ((ovr / 50.0) ** 3) * WAGE_BASE

    age = int(player.age)
    if age < YOUTH_AGE_CUTOFF:
        wage *= WAGE_YOUTH_DISCOUNT
    elif age > PEAK_AGE_END:
        wage *= WAGE_VETERAN_PREMIUM

    rep_gap = max(0, int(buyer_reputation) - NEUTRAL_REPUTATION)
    wage *= 1.0 + rep_gap * REPUTATION_PREMIUM_PER_POINT

    return max(0, int(round(wage)))


def contract_length_multiplier(years: int) -> float:
    y = max(1, min(5, int(years)))
    return CONTRACT_LENGTH_MULTIPLIERS[y]


def expected_free_agent_wage(player: PlayerView, contract_years: int) -> int:
    """What an unattached player expects: last wage discounted for unemployment."""
    base = int(player.wage) if int(player.wage) > 0 else wage_demand(player, NEUTRAL_REPUTATION)
    return max(0, int(round(base * UNEMPLOYMENT_FACTOR * contract_length_multiplier(contract_years))))


def free_agent_contract_years(age: int) -> int:
    a = int(age)
    if a < 28:
        return 3
    if a < 32:
        return 2
    return 1


def listing_status(player: PlayerView, current_season: int) -> str:
    return "contract_expiring" if remaining_contract_years(player, current_season) <= 1 else "available"


# -----------------------------------------------------------------------------
# Release compensation
# -----------------------------------------------------------------------------

ROUNDS_PER_SEASON = 38
STARTER_MINUTES_PER_SEASON = 2700
LOW_USE_UTILIZATION = 0.22
MUTUAL_TERMINATION_MAX_AGE = 23
# Share of the remaining wage bill a player settles for, before market outlook.
RELEASE_SETTLEMENT_RATIO = 0.5
MAX_MARKET_OUTLOOK = 0.9
OUTLOOK_QUALITY_BASE = 55
OUTLOOK_QUALITY_SPAN = 50
OUTLOOK_QUALITY_CAP = 0.3

# (max age, share of the wage bill the player expects to recover elsewhere)
OUTLOOK_BY_AGE = ((23, 0.6), (27, 0.45), (30, 0.3), (33, 0.15))


def utilization(player: PlayerView, current_round: int) -> float:
    """Minutes played relative to a regular starter at this point of the season."""
    expected = max(1.0, max(1, int(current_round)) / ROUNDS_PER_SEASON * STARTER_MINUTES_PER_SEASON)
    return max(0, int(player.season_minutes)) / expected


def market_outlook(player: PlayerView) -> float:
    age = int(player.age)
    by_age = 0.0
    for max_age, share in OUTLOOK_BY_AGE:
        if age <= max_age:
            by_age = share
            break
    by_quality = (overall(player) - OUTLOOK_QUALITY_BASE) / OUTLOOK_QUALITY_SPAN
    by_quality = max(0.0, min(OUTLOOK_QUALITY_CAP, by_quality))
    return min(MAX_MARKET_OUTLOOK, by_age + by_quality)


def release_compensation(player: PlayerView, current_season: int, current_round: int) -> ReleaseQuote:
    """Fee owed to terminate the player's contract now.

    Expired contracts cost nothing. A young, barely used player in the last
    contract year agrees to a mutual termination. Otherwise the player settles
    for part of the remaining wage bill, less what a new club is likely to pay.
    """
    years = remaining_contract_years(player, current_season)
    if years <= 0:
        return ReleaseQuote(player_id=player.player_id, fee=0, remaining_years=0, remaining_rounds=0)

    rounds_left = max(0, ROUNDS_PER_SEASON - int(current_round)) + (years - 1) * ROUNDS_PER_SEASON
    if (
        years <= 1
        and int(player.age) <= MUTUAL_TERMINATION_MAX_AGE
        and utilization(player, current_round) < LOW_USE_UTILIZATION
    ):
        return ReleaseQuote(
            player_id=player.player_id,
            fee=0,
            remaining_years=years,
            remaining_rounds=rounds_left,
            mutual_termination=True,
        )

    owed = int(player.wage) * rounds_left
    fee = owed * (1.0 - market_outlook(player)) * RELEASE_SETTLEMENT_RATIO
    return ReleaseQuote(
        player_id=player.player_id,
        fee=max(0, int(round(fee))),
        remaining_years=years,
        remaining_rounds=rounds_left,
    )
