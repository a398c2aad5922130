from __future__ import annotations

"""Background runner for the per-round AI transfer pass.

The advance-round request hands the pass to a single worker thread and
returns. A failed pass is logged with its traceback and kept as the save's
last status so the caller can see it on the next poll.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import TransferConfig
from .types import RoundResult

logger = logging.getLogger(__name__)


@dataclass
class RunState:
    save_id: str
    season: int
    round: int
    status: str = "running"  # running | succeeded | failed
    result: Optional[RoundResult] = None
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "save_id": self.save_id,
            "season": int(self.season),
            "round": int(self.round),
            "status": self.status,
            "result": self.result.to_payload() if self.result is not None else None,
            "error": self.error,
        }


def _run_round(
    db_path: str,
    save_id: str,
    human_team_id: Optional[str],
    season: int,
    round: int,
    config: Optional[TransferConfig],
) -> RoundResult:
    # The worker owns its own connection.
    from league_repo import LeagueRepo

    from .market import process_ai_transfers

    with LeagueRepo(db_path) as repo:
        return process_ai_transfers(repo, save_id, human_team_id, season, round, config)


class AITransferSupervisor:
    """One pass per save at a time; a second submit while running returns the running future."""

    def __init__(self, *, max_workers: int = 1) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ai-transfers")
        self._mu = threading.Lock()
        self._futures: Dict[str, Future] = {}
        self._states: Dict[str, RunState] = {}

    def submit(
        self,
        db_path: str,
        save_id: str,
        human_team_id: Optional[str],
        season: int,
        round: int,
        config: Optional[TransferConfig] = None,
    ) -> Future:
        with self._mu:
            running = self._futures.get(save_id)
            if running is not None and not running.done():
                logger.info("AI_TRANSFER_BACKGROUND_ALREADY_RUNNING save=%s", save_id)
                return running
            state = RunState(save_id=save_id, season=int(season), round=int(round))
            self._states[save_id] = state
            future = self._executor.submit(_run_round, db_path, save_id, human_team_id, season, round, config)
            self._futures[save_id] = future

        future.add_done_callback(lambda f: self._on_done(state, f))
        return future

    def _on_done(self, state: RunState, future: Future) -> None:
        exc = future.exception()
        with self._mu:
            if exc is None:
                state.status = "succeeded"
                state.result = future.result()
            else:
                state.status = "failed"
                state.error = f"{type(exc).__name__}: {exc}"
        if exc is None:
            logger.info("AI_TRANSFER_BACKGROUND_DONE save=%s round=%s", state.save_id, state.round)
        else:
            logger.error(
                "AI_TRANSFER_BACKGROUND_FAILED save=%s round=%s error=%s",
                state.save_id,
                state.round,
                state.error,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def status(self, save_id: str) -> Dict[str, Any]:
        with self._mu:
            state = self._states.get(save_id)
            if state is None:
                return {"save_id": save_id, "status": "idle"}
            return state.to_payload()

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


_SUPERVISOR: Optional[AITransferSupervisor] = None
_SUPERVISOR_MU = threading.Lock()


def get_supervisor() -> AITransferSupervisor:
    global _SUPERVISOR
    with _SUPERVISOR_MU:
        if _SUPERVISOR is None:
            _SUPERVISOR = AITransferSupervisor()
        return _SUPERVISOR


def reset_supervisor(*, wait: bool = True) -> None:
    """Shut the default supervisor down; the next ``get_supervisor()`` starts a fresh one."""
    global _SUPERVISOR
    with _SUPERVISOR_MU:
        sup, _SUPERVISOR = _SUPERVISOR, None
    if sup is not None:
        sup.shutdown(wait=wait)
