"""
Unit Tests for the Nonce Sequencer

Run with:
    pytest tests/unit/test_nonce.py -v
"""

import threading

from core.nonce import Nonce


class FakeClock:
    def __init__(self, value):
        self.value = value

    def __call__(self):
        return self.value


class TestNonce:
    """Test seeding and strict monotonicity"""

    def test_first_value_comes_from_clock(self):
        nonce = Nonce(clock=FakeClock(1000))
        assert nonce.get() == 0
        assert nonce.next() == 1000

    def test_increments_by_one(self):
        nonce = Nonce(clock=FakeClock(1000))
        assert [nonce.next() for _ in range(3)] == [1000, 1001, 1002]
        assert nonce.get() == 1002

    def test_increments_even_if_clock_moves(self):
        clock = FakeClock(1000)
        nonce = Nonce(clock=clock)
        nonce.next()
        clock.value = 5000
        assert nonce.next() == 1001

    def test_track_clock_follows_wall_clock(self):
        clock = FakeClock(1000)
        nonce = Nonce(clock=clock, track_clock=True)
        assert nonce.next() == 1000
        clock.value = 5000
        assert nonce.next() == 5000

    def test_track_clock_never_repeats_within_same_tick(self):
        nonce = Nonce(clock=FakeClock(1000), track_clock=True)
        assert [nonce.next() for _ in range(3)] == [1000, 1001, 1002]

    def test_track_clock_ignores_clock_going_backwards(self):
        clock = FakeClock(1000)
        nonce = Nonce(clock=clock, track_clock=True)
        nonce.next()
        clock.value = 10
        assert nonce.next() == 1001

    def test_set_moves_forward_only(self):
        nonce = Nonce(clock=FakeClock(1000))
        nonce.next()
        nonce.set(2000)
        assert nonce.next() == 2001
        nonce.set(5)
        assert nonce.get() == 2001

    def test_default_clock_is_nanoseconds(self):
        # anything seeded from time.time_ns() is far above a seconds clock
        assert Nonce().next() > 10 ** 15

    def test_concurrent_callers_never_share_a_value(self):
        nonce = Nonce(clock=FakeClock(1))
        results = []
        lock = threading.Lock()

        def worker():
            values = [nonce.next() for _ in range(500)]
            with lock:
                results.extend(values)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4000
        assert len(set(results)) == 4000
        assert max(results) == 4000
