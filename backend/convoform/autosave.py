"""Debounced autosave for the draft document.

Each :meth:`AutosaveScheduler.schedule` call replaces the pending save, so a
burst of edits turns into one persistence call carrying the latest
document once the quiet period elapses. A save that has started is
"in flight" and is no longer affected by new schedules; several may overlap
and their responses are never read back into local state.

Usage::

    scheduler = AutosaveScheduler(client.save_form, on_error=report)
    scheduler.schedule(form_name, doc)      # on every commit
    await scheduler.flush(form_name, doc)   # before publish
    scheduler.cancel()                      # at session end
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from convoform.config import settings
from convoform.exceptions import SaveError
from convoform.models.document import ConversationDocument

logger = logging.getLogger(__name__)

SaveFunc = Callable[[str, ConversationDocument], Awaitable[Any]]
ErrorCallback = Callable[[SaveError], None]


class AutosaveScheduler:
    """Cancellable, debounced persistence of the latest document."""

    def __init__(
        self,
        save: SaveFunc,
        delay: Optional[float] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        """
        Args:
            save: Coroutine function persisting ``(name, document)``.
            delay: Quiet period in seconds (default: ``AUTOSAVE_DELAY_SECONDS``).
            on_error: Called with a :class:`SaveError` when a debounced save fails.
        """
        self._save = save
        self.delay = settings.autosave_delay_seconds if delay is None else delay
        self._on_error = on_error
        self._pending: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self.saves_started = 0
        self.closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, name: str, document: ConversationDocument) -> None:
        """Replace any pending save with one for *document*.

        Must be called from inside the running event loop.
        """
        if self.closed:
            logger.debug("Autosave closed; ignoring schedule")
            return
        self._cancel_pending()
        loop = asyncio.get_running_loop()
        self._pending = loop.create_task(self._debounce(name, document))

    def cancel(self) -> None:
        """Drop the pending save, if any. In-flight saves run to completion."""
        if self._cancel_pending():
            logger.info("Pending autosave cancelled")

    def close(self) -> None:
        """Cancel the pending save and ignore every later :meth:`schedule`."""
        self.closed = True
        self.cancel()

    async def flush(self, name: str, document: ConversationDocument) -> Any:
        """Persist *document* now, bypassing the debounce.

        Cancels the pending save, waits for every in-flight save to settle
        (so none of them can land after this one), then saves.

        Raises:
            SaveError: If the save fails.
        """
        self._cancel_pending()
        await self.wait_idle()
        try:
            return await self._save(name, document)
        except Exception as e:
            logger.error("Forced save failed: %s", e)
            raise SaveError(f"Save failed: {e}") from e

    async def wait_idle(self) -> None:
        """Wait until no save is in flight. Failures were already reported."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_pending(self) -> bool:
        task, self._pending = self._pending, None
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    async def _debounce(self, name: str, document: ConversationDocument) -> None:
        await asyncio.sleep(self.delay)
        if self._pending is asyncio.current_task():
            self._pending = None
        task = asyncio.get_running_loop().create_task(self._run_save(name, document))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run_save(self, name: str, document: ConversationDocument) -> None:
        self.saves_started += 1
        try:
            await self._save(name, document)
            logger.debug("Autosaved %d steps", len(document.steps))
        except Exception as e:
            logger.error("Autosave failed: %s", e, exc_info=True)
            if self._on_error is not None:
                self._on_error(SaveError(f"Autosave failed: {e}"))
