# tests/test_retry.py

import asyncio
import unittest

from moose_tracker.scraper.retry import TransientUIError, backoff_schedule, is_transient_ui_error, retry_on


class Flaky:
    """Fails with the given errors in order, then returns 'ok'."""

    def __init__(self, errors):
        self.errors = list(errors)
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRetryEnvelope(unittest.TestCase):

    def setUp(self):
        self.sleeps = []

    async def _sleep(self, seconds):
        self.sleeps.append(seconds)

    def run_retry(self, action, **kwargs):
        return asyncio.run(retry_on(action, sleep=self._sleep, player="Alice", label="click", **kwargs))

    def test_success_on_third_attempt(self):
        action = Flaky([TransientUIError("detached"), TransientUIError("detached")])
        self.assertEqual(self.run_retry(action), "ok")
        self.assertEqual(action.attempts, 3)
        self.assertEqual(self.sleeps, [0.25, 0.5])

    def test_exhaustion_raises_last_transient_error(self):
        action = Flaky([TransientUIError("one"), TransientUIError("two"), TransientUIError("three")])
        with self.assertRaises(TransientUIError) as ctx:
            self.run_retry(action)
        self.assertEqual(str(ctx.exception), "three")
        self.assertEqual(action.attempts, 3)

    def test_non_transient_error_is_not_retried(self):
        action = Flaky([ValueError("bad selector")])
        with self.assertRaises(ValueError):
            self.run_retry(action)
        self.assertEqual(action.attempts, 1)
        self.assertEqual(self.sleeps, [])

    def test_detached_message_is_classified_transient(self):
        action = Flaky([RuntimeError("Element is not attached to the DOM")])
        self.assertEqual(self.run_retry(action), "ok")
        self.assertEqual(action.attempts, 2)

    def test_custom_classifier_and_attempts(self):
        action = Flaky([KeyError("x")] * 4)
        self.assertEqual(
            self.run_retry(action, classify=lambda e: isinstance(e, KeyError), attempts=5),
            "ok",
        )
        self.assertEqual(self.sleeps, [0.25, 0.5, 0.75, 0.75])


def test_transient_markers():
    assert is_transient_ui_error(RuntimeError("Target page, context or browser has been closed"))
    assert is_transient_ui_error(RuntimeError("Execution context was destroyed, most likely because of a navigation"))
    assert not is_transient_ui_error(RuntimeError("Timeout 10000ms exceeded"))


def test_backoff_schedule_holds_last_value():
    class State:
        def __init__(self, n):
            self.attempt_number = n

    wait = backoff_schedule([100, 200])
    assert [wait(State(n)) for n in (1, 2, 3)] == [0.1, 0.2, 0.2]
