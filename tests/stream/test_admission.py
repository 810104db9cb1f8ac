import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from gurulo.errors import AdmissionRefused, ErrorKind
from gurulo.stream import AdmissionLimiter


def test_limit_per_client(clock):
    limiter = AdmissionLimiter(limit=2, window=60, clock=clock)
    limiter.admit("1.2.3.4")
    limiter.admit("1.2.3.4")

    with pytest.raises(AdmissionRefused) as excinfo:
        limiter.admit("1.2.3.4")

    assert excinfo.value.kind is ErrorKind.ADMISSION_REFUSED
    assert excinfo.value.user_facing
    assert excinfo.value.retry_after == pytest.approx(60)
    # Other clients are unaffected.
    limiter.admit("5.6.7.8")


def test_release_frees_a_slot(clock):
    limiter = AdmissionLimiter(limit=1, window=60, clock=clock)
    ticket = limiter.admit("c")
    with pytest.raises(AdmissionRefused):
        limiter.admit("c")

    assert ticket.release() is True
    assert ticket.release() is False
    limiter.admit("c")
    assert limiter.active("c") == 1


def test_window_deadline_resets_count(clock):
    limiter = AdmissionLimiter(limit=2, window=60, clock=clock)
    limiter.admit("c")
    limiter.admit("c")

    clock.advance(30)
    with pytest.raises(AdmissionRefused) as excinfo:
        limiter.admit("c")
    assert excinfo.value.retry_after == pytest.approx(30)

    clock.advance(30)
    limiter.admit("c")
    assert limiter.active("c") == 1


def test_release_after_reset_does_not_go_negative(clock):
    limiter = AdmissionLimiter(limit=2, window=10, clock=clock)
    old = limiter.admit("c")
    clock.advance(11)
    limiter.admit("c")  # new window, count reset to 0 then 1

    old.release()
    old_again = limiter.active("c")
    limiter._release("c")

    assert old_again == 0
    assert limiter.active("c") == 0


def test_ticket_as_context_manager(clock):
    limiter = AdmissionLimiter(limit=1, window=60, clock=clock)
    with limiter.admit("c") as ticket:
        assert limiter.active("c") == 1
    assert ticket.released
    assert limiter.active("c") == 0


def test_purge_drops_idle_expired_records(clock):
    limiter = AdmissionLimiter(limit=3, window=10, clock=clock)
    limiter.admit("idle").release()
    limiter.admit("busy")
    clock.advance(10)

    assert limiter.purge() == 1
    assert limiter.stats()["clients"] == 1


@pytest.mark.parametrize("limit, window", [(0, 60), (1, 0)])
def test_invalid_configuration(limit, window):
    with pytest.raises(ValueError):
        AdmissionLimiter(limit=limit, window=window)


def test_concurrent_admits_never_exceed_the_limit(clock):
    limit = 4
    limiter = AdmissionLimiter(limit=limit, window=60, clock=clock)
    barrier = threading.Barrier(limit * 3)

    def attempt(_):
        barrier.wait()
        try:
            return limiter.admit("shared-ip")
        except AdmissionRefused:
            return None

    with ThreadPoolExecutor(max_workers=limit * 3) as pool:
        results = list(pool.map(attempt, range(limit * 3)))

    tickets = [r for r in results if r is not None]
    assert len(tickets) == limit
    assert limiter.active("shared-ip") == limit
    assert limiter.stats()["refused"] == limit * 2


@pytest.mark.asyncio
async def test_periodic_purge_runs_until_stopped(clock):
    limiter = AdmissionLimiter(limit=2, window=10, clock=clock)
    limiter.admit("idle").release()
    clock.advance(10)

    await limiter.start(interval=0.01)
    await asyncio.sleep(0.05)
    await limiter.stop()

    assert limiter.stats()["clients"] == 0
