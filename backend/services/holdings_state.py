"""Versioned, atomically replaced snapshot of the holdings collection."""

import logging
import threading
from typing import Callable, Iterable

from services.types import Holding

logger = logging.getLogger(__name__)

HoldingsListener = Callable[[tuple[Holding, ...], int], None]


class HoldingsState:
    """The single shared mutable resource: the current list of holdings.

    Readers always get a complete tuple; writers swap in a new tuple
    under the lock and bump ``version``. Listeners run after the swap,
    outside the lock.
    """

    def __init__(self, holdings: Iterable[Holding] = ()):
        self._holdings: tuple[Holding, ...] = tuple(holdings)
        self._version = 0
        self._lock = threading.Lock()
        self._listeners: list[HoldingsListener] = []

    @property
    def holdings(self) -> tuple[Holding, ...]:
        return self._holdings

    @property
    def version(self) -> int:
        return self._version

    def get(self, asset_id: int) -> Holding | None:
        return next((h for h in self._holdings if h.id == asset_id), None)

    def replace(self, holdings: Iterable[Holding]) -> int:
        """Swap in a whole new collection. Returns the new version."""
        return self.update(lambda _: tuple(holdings))

    def update(
        self, fn: Callable[[tuple[Holding, ...]], Iterable[Holding]]
    ) -> int:
        """Apply ``fn`` to the current snapshot and store its result atomically."""
        with self._lock:
            self._holdings = tuple(fn(self._holdings))
            self._version += 1
            snapshot, version = self._holdings, self._version
        for listener in list(self._listeners):
            try:
                listener(snapshot, version)
            except Exception:
                logger.warning("Holdings listener failed", exc_info=True)
        return version

    def subscribe(self, listener: HoldingsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
