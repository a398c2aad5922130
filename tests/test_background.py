import logging

from conftest import HUMAN, SAVE_ID, add_player
from transfer_market.background import AITransferSupervisor


def test_failed_pass_is_reported_and_logged(repo, caplog):
    caplog.set_level(logging.ERROR, logger="transfer_market.background")
    sup = AITransferSupervisor()
    sup.submit(repo.db_path, "no-such-save", HUMAN, 1, 2)
    sup.shutdown(wait=True)

    status = sup.status("no-such-save")
    assert status["status"] == "failed"
    assert "SAVE_NOT_FOUND" in status["error"]
    assert any("AI_TRANSFER_BACKGROUND_FAILED" in r.getMessage() for r in caplog.records)


def test_successful_pass_exposes_round_result(repo):
    add_player(repo, "fa1", None, position="GK")
    sup = AITransferSupervisor()
    future = sup.submit(repo.db_path, SAVE_ID, HUMAN, 1, 2)
    sup.shutdown(wait=True)

    assert future.result().free_agent_signings == 1
    status = sup.status(SAVE_ID)
    assert status["status"] == "succeeded"
    assert status["result"]["free_agent_signings"] == 1


def test_idle_before_first_submit():
    sup = AITransferSupervisor()
    try:
        assert sup.status("s1") == {"save_id": "s1", "status": "idle"}
    finally:
        sup.shutdown()
