from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .mutations import ExpireOffers

if TYPE_CHECKING:
    from league_repo import LeagueRepo

logger = logging.getLogger(__name__)


def sweep_expired_offers(repo: "LeagueRepo", save_id: str, current_round: int) -> int:
    """Move open offers to ``expired`` once ``current_round`` is past ``expires_round``.

    An offer with ``expires_round == current_round`` is still valid this round.
    Returns the number of offers expired.
    """
    with repo.transaction():
        n = repo.count_expirable_offers(save_id, current_round)
        if n:
            repo.apply_intents([ExpireOffers(save_id, int(current_round))])
    if n:
        logger.info("OFFERS_EXPIRED save=%s round=%s count=%s", save_id, current_round, n)
    return n
