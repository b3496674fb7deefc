"""Cooperative cancellation for long-running scrape loops."""

import asyncio


class CancellationToken:
    """Flag checked at sol/volume boundaries.

    A child token is cancelled whenever its parent is, so cancelling the
    service-level token stops every job derived from it.
    """

    def __init__(self, parent: "CancellationToken | None" = None):
        self._event = asyncio.Event()
        self._children: set[CancellationToken] = set()
        self._parent = parent
        if parent is not None:
            parent._children.add(self)
            if parent.is_cancelled:
                self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()
        for child in list(self._children):
            child.cancel()

    @property
    def child_count(self) -> int:
        return len(self._children)

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def detach(self) -> None:
        """Stop following the parent. Call once the work this token guards is over."""
        if self._parent is not None:
            self._parent._children.discard(self)
            self._parent = None

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`, returning early on cancel. Returns True if cancelled."""
        if self.is_cancelled:
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
