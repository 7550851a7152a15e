"""
SURFACESCAN Cancellation Token Tests
"""

import asyncio

import pytest

from surfacescan.core.cancellation import CancelToken
from surfacescan.core.errors import OperationCancelled


class TestCancelToken:
    """Test the one-shot token."""

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self):
        """Test the first reason sticks."""
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    @pytest.mark.asyncio
    async def test_callback_runs_once_on_cancel(self):
        """Test callbacks fire exactly once."""
        token = CancelToken()
        calls = []
        token.add_callback(lambda t: calls.append(t.reason))
        token.cancel("stop")
        token.cancel("again")
        assert calls == ["stop"]

    @pytest.mark.asyncio
    async def test_callback_on_fired_token_runs_immediately(self):
        """Test late subscribers still hear about the cancellation."""
        token = CancelToken()
        token.cancel("done")
        calls = []
        token.add_callback(lambda t: calls.append(t.reason))
        assert calls == ["done"]

    @pytest.mark.asyncio
    async def test_removed_callback_does_not_run(self):
        """Test the remover detaches the callback."""
        token = CancelToken()
        calls = []
        remove = token.add_callback(lambda t: calls.append(t.reason))
        remove()
        token.cancel()
        assert calls == []

    @pytest.mark.asyncio
    async def test_raise_if_cancelled(self):
        """Test raise_if_cancelled carries the reason."""
        token = CancelToken()
        token.raise_if_cancelled()
        token.cancel("paused")
        with pytest.raises(OperationCancelled) as exc:
            token.raise_if_cancelled()
        assert exc.value.reason == "paused"


class TestGuard:
    """Test racing work against a token."""

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        """Test guard passes the result through when the token stays quiet."""
        async def work():
            await asyncio.sleep(0.01)
            return 42

        assert await CancelToken().guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_propagates_work_errors(self):
        """Test exceptions from the work are not masked."""
        async def work():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await CancelToken().guard(work())

    @pytest.mark.asyncio
    async def test_guard_cancels_inflight_work(self):
        """Test firing the token aborts the work and raises OperationCancelled."""
        token = CancelToken()
        state = {"cancelled": False}

        async def work():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                state["cancelled"] = True
                raise

        asyncio.get_running_loop().call_later(0.02, token.cancel, "paused")
        with pytest.raises(OperationCancelled) as exc:
            await asyncio.wait_for(token.guard(work()), timeout=2)

        assert exc.value.reason == "paused"
        assert state["cancelled"] is True

    @pytest.mark.asyncio
    async def test_guard_on_fired_token_never_starts_work(self):
        """Test an already-fired token rejects immediately."""
        token = CancelToken()
        token.cancel("stopped")
        started = []

        async def work():
            started.append(True)

        with pytest.raises(OperationCancelled):
            await token.guard(work())
        assert started == []

    @pytest.mark.asyncio
    async def test_sleep_ends_early(self):
        """Test sleep is interrupted by the token."""
        token = CancelToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.02, token.cancel, "stop")
        start = loop.time()
        with pytest.raises(OperationCancelled):
            await token.sleep(5)
        assert loop.time() - start < 1


class TestComposition:
    """Test first_of and after."""

    @pytest.mark.asyncio
    async def test_first_of_takes_first_reason(self):
        """Test the merged token fires with the first source's reason."""
        a, b = CancelToken("a"), CancelToken("b")
        merged = CancelToken.first_of(a, b)
        assert not merged.cancelled

        b.cancel("from b")
        a.cancel("from a")
        assert merged.cancelled
        assert merged.reason == "from b"

    @pytest.mark.asyncio
    async def test_first_of_with_fired_source(self):
        """Test merging an already-fired token yields a fired token."""
        a = CancelToken()
        a.cancel("early")
        merged = CancelToken.first_of(a, CancelToken())
        assert merged.cancelled
        assert merged.reason == "early"

    @pytest.mark.asyncio
    async def test_release_detaches_sources(self):
        """Test a released merged token ignores its sources."""
        source = CancelToken()
        merged = CancelToken.first_of(source)
        merged.release()
        source.cancel("late")
        assert not merged.cancelled

    @pytest.mark.asyncio
    async def test_after_fires_with_reason(self):
        """Test the timer token fires by itself."""
        token = CancelToken.after(0.01, reason="timed out")
        await asyncio.wait_for(token.wait(), timeout=1)
        assert token.reason == "timed out"

    @pytest.mark.asyncio
    async def test_after_release_cancels_timer(self):
        """Test releasing the timer token stops it firing."""
        token = CancelToken.after(0.01)
        token.release()
        await asyncio.sleep(0.05)
        assert not token.cancelled
