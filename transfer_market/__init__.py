from __future__ import annotations

"""transfer_market package public API.

Pure pieces (config, errors, types, valuation, policy) are imported eagerly.
The repo-backed services are exposed through lazy wrappers so that
``league_repo`` can import the types from this package without a cycle.
"""

from transfer_market.config import (
    DEFAULT_NEGOTIATION_CONFIG,
    DEFAULT_TRANSFER_CONFIG,
    NegotiationConfig,
    TransferConfig,
    get_transfer_config,
)
from transfer_market.errors import (
    AuthorizationError,
    ChunkedBatchError,
    ConflictError,
    NotFoundError,
    TransferError,
    ValidationError,
)
from transfer_market.policy import (
    buy_decision,
    free_agent_decision,
    select_players_to_list,
    sell_decision,
)
from transfer_market.valuation import asking_price, overall, release_compensation, wage_demand


def process_ai_transfers(repo, save_id, human_team_id, season, round, config=None, *, rng=None):
    """Lazy wrapper around `transfer_market.market.process_ai_transfers`."""
    from transfer_market.market import process_ai_transfers as _process

    return _process(repo, save_id, human_team_id, season, round, config, rng=rng)


def complete_transfer(repo, save_id, offer_id, *, acting_team_id=None):
    """Lazy wrapper around `transfer_market.service.complete_transfer`."""
    from transfer_market.service import complete_transfer as _complete

    return _complete(repo, save_id, offer_id, acting_team_id=acting_team_id)


__all__ = [
    "AuthorizationError",
    "ChunkedBatchError",
    "ConflictError",
    "DEFAULT_NEGOTIATION_CONFIG",
    "DEFAULT_TRANSFER_CONFIG",
    "NegotiationConfig",
    "NotFoundError",
    "TransferConfig",
    "TransferError",
    "ValidationError",
    "asking_price",
    "buy_decision",
    "complete_transfer",
    "free_agent_decision",
    "get_transfer_config",
    "overall",
    "process_ai_transfers",
    "release_compensation",
    "select_players_to_list",
    "sell_decision",
    "wage_demand",
]
