import asyncio
import threading

import pytest

from query_guard import (
    GuardConfig,
    GuardStatus,
    ManualClock,
    QueryBlocked,
    QueryGuard,
)


def make_guard(**overrides):
    clock = ManualClock(start_ms=1_000_000)
    return QueryGuard(GuardConfig(**overrides), clock=clock), clock


def fail(guard, key, times):
    for _ in range(times):
        guard.record_failure(key)


def test_never_seen_key_is_allowed():
    guard, _ = make_guard()
    assert guard.classify("x") is False
    assert guard.classify(["user-profile"]) is False
    assert len(guard) == 0


def test_three_failures_block_key():
    guard, _ = make_guard()
    fail(guard, "x", 3)
    assert guard.classify("x") is True
    assert guard.status("x") is GuardStatus.OPEN


def test_below_threshold_stays_allowed_until_last_failure():
    guard, _ = make_guard()
    fail(guard, "x", 2)
    assert guard.classify("x") is False
    guard.record_failure("x")
    assert guard.classify("x") is True


def test_block_expires_after_window():
    guard, clock = make_guard()
    fail(guard, "x", 3)
    clock.advance(30_001)
    assert guard.classify("x") is False
    assert guard.status("x") is GuardStatus.REOPENED


def test_block_expires_exactly_at_window_end():
    guard, clock = make_guard()
    fail(guard, "x", 3)
    clock.advance(29_999)
    assert guard.classify("x") is True
    clock.advance(1)
    assert guard.classify("x") is False


def test_failure_after_expiry_reblocks_for_full_window():
    guard, clock = make_guard()
    fail(guard, "x", 3)
    clock.advance(30_000)
    assert guard.classify("x") is False

    guard.record_failure("x")
    assert guard.classify("x") is True
    assert guard.retry_after_ms("x") == 30_000
    assert guard.inspect("x").consecutive_failures == 4

    clock.advance(29_999)
    assert guard.classify("x") is True


def test_success_resets_open_key():
    guard, _ = make_guard()
    fail(guard, "x", 3)
    guard.record_success("x")
    assert guard.classify("x") is False

    fail(guard, "x", 2)
    assert guard.classify("x") is False
    assert guard.status("x") is GuardStatus.CLOSED


def test_success_resets_reopened_key():
    guard, clock = make_guard()
    fail(guard, "x", 3)
    clock.advance(30_000)
    guard.record_success("x")

    guard.record_failure("x")
    assert guard.classify("x") is False


def test_success_on_unknown_key_is_harmless():
    guard, _ = make_guard()
    guard.record_success(["never", "seen"])
    assert guard.classify(["never", "seen"]) is False
    assert len(guard) == 0


def test_threshold_of_one_blocks_immediately():
    guard, _ = make_guard(failure_threshold=1)
    guard.record_failure("x")
    assert guard.classify("x") is True


def test_keys_are_independent():
    guard, _ = make_guard()
    fail(guard, ["games", 1], 3)
    assert guard.classify(["games", 1]) is True
    assert guard.classify(["games", 2]) is False
    assert guard.classify("x") is False


def test_structurally_equal_keys_share_an_entry():
    guard, _ = make_guard()
    guard.record_failure(["search", {"query": "zelda", "platform": "switch"}])
    guard.record_failure(("search", {"platform": "switch", "query": "zelda"}))
    guard.record_failure(["search", {"query": "zelda", "platform": "switch"}])
    assert guard.classify(["search", {"platform": "switch", "query": "zelda"}]) is True
    assert len(guard) == 1


def test_retry_after_counts_down():
    guard, clock = make_guard()
    assert guard.retry_after_ms("x") == 0
    fail(guard, "x", 3)
    clock.advance(10_000)
    assert guard.retry_after_ms("x") == 20_000


def test_check_raises_query_blocked_with_retry_after():
    guard, clock = make_guard()
    guard.check("x")
    fail(guard, "x", 3)
    clock.advance(500)
    with pytest.raises(QueryBlocked) as excinfo:
        guard.check("x")
    assert excinfo.value.key == '"x"'
    assert excinfo.value.retry_after_seconds == 30
    assert "try again in 30 seconds" in str(excinfo.value)


def test_attempt_records_outcomes():
    guard, _ = make_guard()
    for _ in range(3):
        with pytest.raises(RuntimeError):
            with guard.attempt("x"):
                raise RuntimeError("backend down")
    assert guard.classify("x") is True

    with pytest.raises(QueryBlocked):
        with guard.attempt("x"):
            pytest.fail("blocked attempt must not run")


def test_attempt_success_clears_failures():
    guard, _ = make_guard()
    fail(guard, "x", 2)
    with guard.attempt("x"):
        pass
    assert "x" not in guard


def test_try_acquire_admits_everyone_after_expiry_by_default():
    guard, clock = make_guard()
    fail(guard, "x", 3)
    assert guard.try_acquire("x") is False
    clock.advance(30_000)
    assert guard.try_acquire("x") is True
    assert guard.try_acquire("x") is True


def test_single_probe_admits_one_caller_after_expiry():
    guard, clock = make_guard(single_probe=True)
    fail(guard, "x", 3)
    clock.advance(30_000)

    assert guard.try_acquire("x") is True
    assert guard.try_acquire("x") is False
    assert guard.classify("x") is False

    guard.record_success("x")
    assert guard.try_acquire("x") is True
    assert guard.try_acquire("x") is True


def test_single_probe_failure_reblocks():
    guard, clock = make_guard(single_probe=True)
    fail(guard, "x", 3)
    clock.advance(30_000)
    assert guard.try_acquire("x") is True
    guard.record_failure("x")
    assert guard.try_acquire("x") is False
    assert guard.classify("x") is True


def test_abandoned_probe_claim_expires():
    guard, clock = make_guard(single_probe=True)
    fail(guard, "x", 3)
    clock.advance(30_000)
    assert guard.try_acquire("x") is True
    clock.advance(30_000)
    assert guard.try_acquire("x") is True


def test_max_entries_evicts_least_recent_unblocked_key():
    guard, _ = make_guard(max_entries=2)
    fail(guard, "blocked", 3)
    guard.record_failure("a")
    guard.record_failure("b")

    assert len(guard) == 2
    assert "blocked" in guard
    assert "a" not in guard
    assert guard.classify("blocked") is True


def test_max_entries_never_evicts_blocked_keys():
    guard, clock = make_guard(max_entries=1, failure_threshold=1)
    guard.record_failure("a")
    guard.record_failure("b")
    assert len(guard) == 2
    assert guard.classify("a") is True

    clock.advance(30_000)
    guard.record_failure("c")
    assert "a" not in guard
    assert "b" not in guard
    assert "c" in guard


def test_snapshot_lists_tracked_keys():
    guard, _ = make_guard()
    fail(guard, "x", 3)
    guard.record_failure(["y"])
    snapshots = {s.key: s for s in guard.snapshot()}
    assert snapshots['"x"'].status is GuardStatus.OPEN
    assert snapshots['"x"'].retry_after_ms == 30_000
    assert snapshots['["y"]'].status is GuardStatus.CLOSED
    assert snapshots['["y"]'].consecutive_failures == 1

    guard.clear()
    assert guard.snapshot() == []


def test_concurrent_failures_are_not_lost():
    guard, _ = make_guard(failure_threshold=10_000)

    def worker():
        for _ in range(500):
            guard.record_failure("shared")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert guard.inspect("shared").consecutive_failures == 4000


def test_caller_waiting_on_probe_gets_remaining_claim_time():
    guard, clock = make_guard(single_probe=True)
    fail(guard, "x", 3)
    clock.advance(30_000)
    assert guard.try_acquire("x") is True
    clock.advance(10_000)

    assert guard.retry_after_ms("x") == 20_000
    guard.check("x")
    with pytest.raises(QueryBlocked) as excinfo:
        with guard.attempt("x"):
            pytest.fail("second caller must wait for the probe")
    assert excinfo.value.retry_after_seconds == 20


def test_retry_after_ignores_probe_claims_without_single_probe():
    guard, clock = make_guard()
    fail(guard, "x", 3)
    clock.advance(30_000)
    assert guard.try_acquire("x") is True
    assert guard.retry_after_ms("x") == 0


def test_cancelled_attempt_releases_probe_claim():
    guard, clock = make_guard(single_probe=True)
    fail(guard, "x", 3)
    clock.advance(30_000)

    with pytest.raises(asyncio.CancelledError):
        with guard.attempt("x"):
            raise asyncio.CancelledError()

    assert guard.inspect("x").consecutive_failures == 3
    assert guard.try_acquire("x") is True
