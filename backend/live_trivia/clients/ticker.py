import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Ticker:
    """Repeating callback on a daemon thread.

    ``start`` and ``stop`` are idempotent. A stopped ticker can be started
    again; each start gets its own stop event so a late wake-up of the old
    thread never fires the callback. With ``threaded=False`` the ticker only
    tracks whether it is running and the owner drives the callback itself.
    """

    def __init__(self, interval: float, callback: Callable[[], None], threaded: bool = True, name: str = 'ticker'):
        self.interval = interval
        self.callback = callback
        self.threaded = threaded
        self.name = name
        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            if not self.threaded:
                return
            stop_event = threading.Event()
            self._stop_event = stop_event
            threading.Thread(target=self._run, args=(stop_event,), name=self.name, daemon=True).start()

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            if self._stop_event is not None:
                self._stop_event.set()
                self._stop_event = None

    def restart(self) -> None:
        self.stop()
        self.start()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception(f"[{self.name}] tick failed")
