# db_schema/init.py
"""Public entrypoint for applying the SQLite schema.

Each area module exposes ``ddl(now=, schema_version=)`` and optionally
``migrate(cur, ensure_columns=)``. All DDL runs in one executescript, then the
migrate hooks run in module order so later areas can rely on earlier columns.
"""

from __future__ import annotations

import logging
import sqlite3
from types import ModuleType
from typing import Callable, Iterable, Mapping, Sequence

from . import core, transfers

logger = logging.getLogger(__name__)

# Signature of LeagueRepo._ensure_table_columns(cur, table, columns)
EnsureColumnsFn = Callable[[sqlite3.Cursor, str, Mapping[str, str]], None]

# Order matters: transfer tables reference core.players / core.teams.
DEFAULT_MODULES: Sequence[ModuleType] = (
    core,
    transfers,
)


def apply_schema(
    cur: sqlite3.Cursor,
    *,
    now: str,
    schema_version: str,
    ensure_columns: EnsureColumnsFn,
    modules: Iterable[ModuleType] = DEFAULT_MODULES,
) -> None:
    """Apply the schema and migrations (core -> transfers)."""
    areas = list(modules)
    for m in areas:
        if not callable(getattr(m, "ddl", None)):
            raise TypeError(f"schema module {m.__name__} has no ddl()")

    cur.executescript("\n\n".join(m.ddl(now=now, schema_version=schema_version) for m in areas))

    migrated = []
    for m in areas:
        migrate = getattr(m, "migrate", None)
        if migrate is not None:
            migrate(cur, ensure_columns=ensure_columns)
            migrated.append(m.__name__.rsplit(".", 1)[-1])
    logger.debug("SCHEMA_APPLIED version=%s migrated=%s", schema_version, ",".join(migrated) or "-")
