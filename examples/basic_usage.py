"""Example usage of the query guard with a simulated clock."""

from query_guard import GuardConfig, ManualClock, QueryGuard, QueryBlocked


def main():
    """Example: Watch a query key get blocked and recover."""

    clock = ManualClock()
    guard = QueryGuard(GuardConfig(failure_threshold=3, block_duration_ms=30_000), clock=clock)
    key = ["games", {"search": "zelda", "page": 1}]

    # Three failures in a row block the key
    for attempt in range(1, 4):
        guard.record_failure(key)
        print(f"After failure {attempt}: blocked={guard.classify(key)}")

    try:
        guard.check(key)
    except QueryBlocked as exc:
        print(f"\n{exc}")

    # Field order inside the key does not matter
    same_key = ["games", {"page": 1, "search": "zelda"}]
    print(f"Reordered key blocked too: {guard.classify(same_key)}")

    # The block window expires on its own
    clock.advance(30_000)
    print(f"\nAfter 30s: status={guard.status(key).value}")

    # A success clears all history
    guard.record_success(key)
    guard.record_failure(key)
    print(f"After success and one failure: status={guard.status(key).value}")


if __name__ == "__main__":
    main()
