"""Tests for the cancellation token."""

import asyncio

import pytest

from toolagent.errors import RunCancelledError
from toolagent.orchestration import CancellationToken


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_initial_state(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.reason is None
        token.raise_if_cancelled()

    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled is True
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(RunCancelledError, match="stop"):
            token.raise_if_cancelled()

    def test_guard_returns_result(self):
        async def scenario():
            async def work():
                return 42

            return await CancellationToken().guard(work())

        assert asyncio.run(scenario()) == 42

    def test_guard_propagates_work_errors(self):
        async def scenario():
            async def work():
                raise KeyError("missing")

            await CancellationToken().guard(work())

        with pytest.raises(KeyError):
            asyncio.run(scenario())

    def test_guard_on_fired_token_does_not_start_work(self):
        started = []

        async def scenario():
            async def work():
                started.append(1)

            token = CancellationToken()
            token.cancel("early")
            await token.guard(work())

        with pytest.raises(RunCancelledError, match="early"):
            asyncio.run(scenario())
        assert started == []

    def test_guard_cancels_pending_work(self):
        """Pending work is cancelled when the token fires mid-await."""
        state = {}

        async def scenario():
            async def work():
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    state["cancelled"] = True
                    raise

            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.01, token.cancel, "abort")
            await token.guard(work())

        with pytest.raises(RunCancelledError, match="abort"):
            asyncio.run(scenario())
        assert state == {"cancelled": True}

    def test_cancel_after(self):
        async def scenario():
            token = CancellationToken()
            token.cancel_after(0.01)
            await token.wait()
            return token.reason

        assert asyncio.run(scenario()) == "timed out after 0.01s"
