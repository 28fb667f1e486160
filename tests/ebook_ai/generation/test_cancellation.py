import asyncio
import inspect

import pytest

from ebook_ai.exceptions import OperationCancelledError
from ebook_ai.generation.cancellation import cancellable_sleep, raise_if_cancelled, run_cancellable


class TestRaiseIfCancelled:
    """Test raise_if_cancelled."""

    def test_no_event(self):
        """Test a missing event never cancels."""
        # Act & Assert
        raise_if_cancelled(None)

    @pytest.mark.asyncio
    async def test_set_event(self):
        """Test a set event raises OperationCancelledError."""
        # Arrange
        event = asyncio.Event()
        event.set()

        # Act & Assert
        with pytest.raises(OperationCancelledError):
            raise_if_cancelled(event, "wait")


class TestCancellableSleep:
    """Test cancellable_sleep."""

    @pytest.mark.asyncio
    async def test_sleeps_full_duration_without_event(self):
        """Test the sleep completes when nothing cancels it."""
        # Act & Assert
        await cancellable_sleep(0.01, asyncio.Event())

    @pytest.mark.asyncio
    async def test_event_interrupts_sleep(self):
        """Test setting the event aborts a long sleep."""
        # Arrange
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)

        # Act & Assert
        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(cancellable_sleep(30, event), timeout=5)


class TestRunCancellable:
    """Test run_cancellable."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        """Test the awaited value is returned when not cancelled."""
        # Arrange
        async def work():
            return "done"

        # Act & Assert
        assert await run_cancellable(work(), asyncio.Event()) == "done"

    @pytest.mark.asyncio
    async def test_propagates_work_errors(self):
        """Test errors from the work reach the caller unchanged."""
        # Arrange
        async def work():
            raise ValueError("boom")

        # Act & Assert
        with pytest.raises(ValueError):
            await run_cancellable(work(), asyncio.Event())

    @pytest.mark.asyncio
    async def test_event_aborts_work(self):
        """Test setting the event cancels the pending work."""
        # Arrange
        event = asyncio.Event()
        started = asyncio.Event()
        cancelled = []

        async def work():
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        async def trigger():
            await started.wait()
            event.set()

        # Act
        asyncio.ensure_future(trigger())
        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(run_cancellable(work(), event), timeout=5)

        # Assert
        assert cancelled == [True]

    @pytest.mark.asyncio
    async def test_already_set_event_closes_unstarted_work(self):
        """Test the work coroutine is closed, not left un-awaited, when the event is already set."""
        # Arrange
        event = asyncio.Event()
        event.set()
        ran = []

        async def work():
            ran.append(True)

        coroutine = work()

        # Act
        with pytest.raises(OperationCancelledError):
            await run_cancellable(coroutine, event)

        # Assert
        assert inspect.getcoroutinestate(coroutine) == inspect.CORO_CLOSED
        assert ran == []
