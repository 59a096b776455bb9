from __future__ import annotations
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

class Ticker:
    """
    Calls `tick` every `every_seconds` on a daemon thread.
    The first tick happens one full period after start().
    """

    def __init__(self, name: str, tick: Callable[[], None], every_seconds: float,
                 on_error: Optional[Callable[[BaseException], None]] = None):
        """
        tick: callable() -> None; exceptions are passed to on_error and stop the ticker
        """
        self.name = name
        self._tick = tick
        self._every = max(0.001, float(every_seconds))
        self._on_error = on_error
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name=f"ticker-{name}", daemon=True)

    def start(self) -> None:
        self._stop.clear()
        if not self._thread.is_alive():
            self._thread = threading.Thread(target=self._loop, name=f"ticker-{self.name}", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _loop(self) -> None:
        # stop() wakes the wait
        while not self._stop.wait(self._every):
            try:
                self._tick()
            except Exception as ex:
                logger.exception("ticker %s failed", self.name)
                if self._on_error is not None:
                    self._on_error(ex)
                return
