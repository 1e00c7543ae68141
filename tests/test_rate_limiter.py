from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from gallery_ingest.rate_limiter import TokenBucketLimiter
from tests.utils.gallery import FakeClock


def test_refill_after_full_window() -> None:
    clock = FakeClock()
    limiter = TokenBucketLimiter(clock=clock)

    assert limiter.allow("ingest:u1", capacity=1, refill_per_ms=1000) is True
    assert limiter.allow("ingest:u1", capacity=1, refill_per_ms=1000) is False

    clock.advance(500)
    assert limiter.allow("ingest:u1", capacity=1, refill_per_ms=1000) is False

    clock.advance(1000)
    assert limiter.allow("ingest:u1", capacity=1, refill_per_ms=1000) is True


def test_new_bucket_starts_full_and_keys_are_independent() -> None:
    limiter = TokenBucketLimiter(clock=FakeClock())

    admitted = [limiter.allow("ingest:a", capacity=3, refill_per_ms=60_000) for _ in range(4)]

    assert admitted == [True, True, True, False]
    assert limiter.allow("ingest:b", capacity=3, refill_per_ms=60_000) is True


def test_zero_capacity_always_denies() -> None:
    limiter = TokenBucketLimiter(clock=FakeClock())

    assert limiter.allow("ingest:viewer", capacity=0, refill_per_ms=60_000) is False


def test_concurrent_checks_never_over_admit() -> None:
    limiter = TokenBucketLimiter(clock=FakeClock())

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: limiter.allow("ingest:busy", 5, 60_000), range(40)))

    assert sum(results) == 5


def test_reset_forgets_bucket() -> None:
    limiter = TokenBucketLimiter(clock=FakeClock())
    assert limiter.allow("k", 1, 1000)
    assert not limiter.allow("k", 1, 1000)

    limiter.reset("k")

    assert limiter.allow("k", 1, 1000)
