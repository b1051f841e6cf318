"""Tests for the fixed-window rate limiter.

A manual clock stands in for time.monotonic so window resets are exact.
"""

import asyncio
import unittest

import pytest

from cluster_services.errors import RateLimitError
from cluster_services.rate_limiter import RateLimiter

from conftest import ManualClock


class TestFixedWindow(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock()
        self.limiter = RateLimiter(window_ms=1000, max_requests=2, enabled=True, clock=self.clock)

    def test_third_call_in_window_fails(self):
        self.limiter.check("k")
        self.limiter.check("k")
        with self.assertRaises(RateLimitError) as ctx:
            self.limiter.check("k")
        self.assertEqual(str(ctx.exception), "Rate limit exceeded: 2 requests per 1 seconds")

    def test_window_resets_after_expiry(self):
        self.limiter.check("k")
        self.limiter.check("k")
        with self.assertRaises(RateLimitError):
            self.limiter.check("k")
        self.clock.advance(1.5)
        self.limiter.check("k")

    def test_window_still_closed_at_reset_instant(self):
        self.limiter.check("k")
        self.limiter.check("k")
        self.clock.advance(1.0)
        with self.assertRaises(RateLimitError):
            self.limiter.check("k")

    def test_keys_are_independent(self):
        self.limiter.check("a")
        self.limiter.check("a")
        self.limiter.check("b")
        with self.assertRaises(RateLimitError):
            self.limiter.check("a")

    def test_rejected_calls_do_not_extend_window(self):
        self.limiter.check("k")
        self.limiter.check("k")
        for _ in range(5):
            with self.assertRaises(RateLimitError):
                self.limiter.check("k")
        self.clock.advance(1.01)
        self.limiter.check("k")

    def test_disabled_limiter_always_allows(self):
        limiter = RateLimiter(window_ms=1000, max_requests=1, enabled=False, clock=self.clock)
        for _ in range(10):
            limiter.check("k")
        self.assertEqual(len(limiter), 0)


class TestCleanup(unittest.TestCase):

    def test_cleanup_removes_only_expired_entries(self):
        clock = ManualClock()
        limiter = RateLimiter(window_ms=1000, max_requests=5, clock=clock)
        limiter.check("old")
        clock.advance(0.6)
        limiter.check("new")
        clock.advance(0.6)

        self.assertEqual(limiter.cleanup(), 1)
        self.assertEqual(len(limiter), 1)
        self.assertEqual(limiter.cleanup(), 0)


@pytest.mark.asyncio
class TestSweepTask:

    async def test_background_sweep_drops_expired_entries(self):
        clock = ManualClock()
        limiter = RateLimiter(window_ms=1000, max_requests=5, clock=clock)
        limiter.check("k")
        clock.advance(2)

        limiter.start(interval=0.01)
        await asyncio.sleep(0.05)
        await limiter.stop()

        assert len(limiter) == 0

    async def test_start_is_idempotent_and_stop_cancels(self):
        limiter = RateLimiter(window_ms=1000, max_requests=5)
        limiter.start(interval=60)
        task = limiter._sweep_task
        limiter.start(interval=60)
        assert limiter._sweep_task is task

        await limiter.stop()
        assert task.cancelled()
        assert limiter._sweep_task is None

    async def test_stop_without_start_is_noop(self):
        await RateLimiter().stop()
