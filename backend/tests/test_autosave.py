"""
Unit Tests for Debounced Autosave

Covers:
- A burst of edits producing a single save carrying the latest document
- Cancellation at session end
- Failure reporting without retry
- Forced flush ordering relative to in-flight saves

Usage:
    cd backend && pytest tests/test_autosave.py -v
"""

import asyncio
import pytest
import sys
import os
from unittest.mock import AsyncMock, Mock

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from convoform import mutations
from convoform.autosave import AutosaveScheduler
from convoform.exceptions import SaveError
from convoform.models.document import default_document


DELAY = 0.01


def make_documents(count: int):
    """Successive documents, each with one more step."""
    docs = []
    doc = default_document()
    for _ in range(count):
        doc = mutations.add_step(doc)
        docs.append(doc)
    return docs


# ============================================================================
# DEBOUNCE
# ============================================================================

class TestDebounce:
    """Rapid schedules collapse into one save."""

    def test_burst_of_ten_edits_saves_once(self):
        save = AsyncMock(return_value=None)
        docs = make_documents(10)

        async def run():
            scheduler = AutosaveScheduler(save, delay=DELAY)
            for doc in docs:
                scheduler.schedule("Form", doc)
            await asyncio.sleep(DELAY * 5)
            await scheduler.wait_idle()
            return scheduler

        scheduler = asyncio.run(run())

        save.assert_awaited_once_with("Form", docs[-1])
        assert scheduler.saves_started == 1
        assert scheduler.has_pending is False

    def test_separate_quiet_periods_save_separately(self):
        save = AsyncMock(return_value=None)
        first, second = make_documents(2)

        async def run():
            scheduler = AutosaveScheduler(save, delay=DELAY)
            scheduler.schedule("Form", first)
            await asyncio.sleep(DELAY * 5)
            scheduler.schedule("Form", second)
            await asyncio.sleep(DELAY * 5)
            await scheduler.wait_idle()

        asyncio.run(run())

        assert save.await_count == 2
        assert save.await_args_list[0].args == ("Form", first)
        assert save.await_args_list[1].args == ("Form", second)

    def test_nothing_saved_before_delay(self):
        save = AsyncMock(return_value=None)

        async def run():
            scheduler = AutosaveScheduler(save, delay=1.0)
            scheduler.schedule("Form", default_document())
            await asyncio.sleep(0)
            pending = scheduler.has_pending
            scheduler.cancel()
            return pending

        assert asyncio.run(run()) is True
        save.assert_not_awaited()


class TestCancel:

    def test_cancel_drops_pending_save(self):
        save = AsyncMock(return_value=None)

        async def run():
            scheduler = AutosaveScheduler(save, delay=DELAY)
            scheduler.schedule("Form", default_document())
            scheduler.cancel()
            await asyncio.sleep(DELAY * 5)
            return scheduler

        scheduler = asyncio.run(run())

        save.assert_not_awaited()
        assert scheduler.has_pending is False

    def test_close_ignores_later_schedules(self):
        save = AsyncMock(return_value=None)

        async def run():
            scheduler = AutosaveScheduler(save, delay=DELAY)
            scheduler.schedule("Form", default_document())
            scheduler.close()
            scheduler.schedule("Form", default_document())
            pending = scheduler.has_pending
            await asyncio.sleep(DELAY * 5)
            return scheduler, pending

        scheduler, pending = asyncio.run(run())

        save.assert_not_awaited()
        assert pending is False
        assert scheduler.closed is True
        assert scheduler.has_pending is False

    def test_cancel_without_pending_is_harmless(self):
        scheduler = AutosaveScheduler(AsyncMock(), delay=DELAY)
        scheduler.cancel()
        assert scheduler.has_pending is False


# ============================================================================
# FAILURES
# ============================================================================

class TestFailures:

    def test_failure_reported_once_without_retry(self):
        save = AsyncMock(side_effect=RuntimeError("503"))
        on_error = Mock()

        async def run():
            scheduler = AutosaveScheduler(save, delay=DELAY, on_error=on_error)
            scheduler.schedule("Form", default_document())
            await asyncio.sleep(DELAY * 10)
            await scheduler.wait_idle()

        asyncio.run(run())

        assert save.await_count == 1
        on_error.assert_called_once()
        assert isinstance(on_error.call_args.args[0], SaveError)

    def test_failure_without_callback_is_logged(self):
        save = AsyncMock(side_effect=RuntimeError("boom"))

        async def run():
            scheduler = AutosaveScheduler(save, delay=DELAY)
            scheduler.schedule("Form", default_document())
            await asyncio.sleep(DELAY * 5)
            await scheduler.wait_idle()
            return scheduler

        scheduler = asyncio.run(run())
        assert scheduler.saves_started == 1


# ============================================================================
# FLUSH
# ============================================================================

class TestFlush:

    def test_flush_bypasses_debounce(self):
        save = AsyncMock(return_value="saved")
        doc = make_documents(1)[0]

        async def run():
            scheduler = AutosaveScheduler(save, delay=10.0)
            scheduler.schedule("Form", default_document())
            result = await scheduler.flush("Form", doc)
            return scheduler, result

        scheduler, result = asyncio.run(run())

        assert result == "saved"
        save.assert_awaited_once_with("Form", doc)
        assert scheduler.has_pending is False

    def test_flush_waits_for_in_flight_saves(self):
        calls = []
        release = None

        async def save(name, doc):
            calls.append(("start", len(doc.steps)))
            if len(doc.steps) == 1:
                await release.wait()
            calls.append(("end", len(doc.steps)))

        first, second = make_documents(2)

        async def run():
            nonlocal release
            release = asyncio.Event()
            scheduler = AutosaveScheduler(save, delay=DELAY)
            scheduler.schedule("Form", first)
            await asyncio.sleep(DELAY * 5)
            assert scheduler.in_flight == 1

            flush = asyncio.ensure_future(scheduler.flush("Form", second))
            await asyncio.sleep(DELAY)
            assert not flush.done()
            release.set()
            await flush

        asyncio.run(run())

        assert calls == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]

    def test_flush_failure_raises(self):
        save = AsyncMock(side_effect=RuntimeError("down"))

        async def run():
            scheduler = AutosaveScheduler(save, delay=DELAY)
            await scheduler.flush("Form", default_document())

        with pytest.raises(SaveError):
            asyncio.run(run())
