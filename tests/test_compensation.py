import time

import pytest

from sales_engine.core.idempotency import IdempotencyCache
from sales_engine.services.compensation import CompensationLog
from sales_engine.services.errors import DuplicateSubmissionError, PartialRollbackError, StepFailed


def test_unwind_runs_undo_actions_newest_first():
    calls = []
    undo = CompensationLog("sale-1")
    undo.record("delete_header", lambda: calls.append("header"))
    undo.record("delete_lines", lambda: calls.append("lines"))
    undo.record("restore_stock:x", lambda: calls.append("stock"))

    undo.unwind(failed_step="ledger")

    assert calls == ["stock", "lines", "header"]
    assert len(undo) == 0


def test_unwind_stops_at_first_failed_undo():
    calls = []

    def stuck():
        raise StepFailed("lines_delete", "connection reset")

    undo = CompensationLog("sale-1")
    undo.record("delete_header", lambda: calls.append("header"))
    undo.record("delete_lines", stuck)
    undo.record("restore_stock:x", lambda: calls.append("stock"))

    with pytest.raises(PartialRollbackError) as exc_info:
        undo.unwind(failed_step="ledger")

    assert calls == ["stock"]
    assert exc_info.value.pending_undo == ["delete_lines", "delete_header"]
    assert exc_info.value.details[0]["sale_id"] == "sale-1"


def test_idempotency_cache_lifecycle():
    cache = IdempotencyCache(ttl_seconds=30)

    assert cache.begin("k") is None
    with pytest.raises(DuplicateSubmissionError):
        cache.begin("k")
    cache.complete("k", "sale-9")
    assert cache.begin("k") == "sale-9"

    assert cache.begin("other") is None
    cache.release("other")
    assert cache.begin("other") is None


def test_idempotency_keys_expire(monkeypatch):
    cache = IdempotencyCache(ttl_seconds=5)
    now = time.time()
    monkeypatch.setattr("sales_engine.core.idempotency.time.time", lambda: now)
    cache.complete("k", "sale-1")

    monkeypatch.setattr("sales_engine.core.idempotency.time.time", lambda: now + 6)
    assert cache.begin("k") is None


def test_in_flight_key_outlives_the_ttl(monkeypatch):
    cache = IdempotencyCache(ttl_seconds=5)
    now = time.time()
    monkeypatch.setattr("sales_engine.core.idempotency.time.time", lambda: now)
    assert cache.begin("k") is None

    # a slow commit is still running long after the window
    monkeypatch.setattr("sales_engine.core.idempotency.time.time", lambda: now + 60)
    with pytest.raises(DuplicateSubmissionError):
        cache.begin("k")

    cache.complete("k", "sale-1")
    assert cache.begin("k") == "sale-1"


def test_reused_key_with_other_payload_is_rejected():
    cache = IdempotencyCache(ttl_seconds=30)

    assert cache.begin("k", "payload-a") is None
    with pytest.raises(DuplicateSubmissionError) as exc_info:
        cache.begin("k", "payload-b")
    assert "different sale" in str(exc_info.value)

    cache.complete("k", "sale-1")
    assert cache.begin("k", "payload-a") == "sale-1"
    with pytest.raises(DuplicateSubmissionError):
        cache.begin("k", "payload-b")
