from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException

from league_repo import LeagueRepo
from transfer_market.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransferError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def get_db_path() -> str:
    db_path = os.environ.get("TRANSFER_DB_PATH")
    if not db_path:
        raise RuntimeError("TRANSFER_DB_PATH is required (no default db_path).")
    return db_path


def _status_for(error: TransferError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConflictError):
        return 409
    return 500


def _transfer_http_error(error: TransferError) -> HTTPException:
    status = _status_for(error)
    if status >= 500:
        logger.error("TRANSFER_API_ERROR code=%s message=%s", error.code, error.message, exc_info=error)
    return HTTPException(status_code=status, detail=error.to_payload())


@contextmanager
def transfer_repo() -> Iterator[LeagueRepo]:
    """Request-scoped repo; taxonomy errors become HTTP errors."""
    try:
        with LeagueRepo(get_db_path()) as repo:
            yield repo
    except TransferError as exc:
        raise _transfer_http_error(exc) from exc
