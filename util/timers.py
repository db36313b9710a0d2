import logging
import threading
from threading import Lock
from typing import Callable, Optional

logger = logging.getLogger("blockout.timers")


class Debouncer:
    """Coalesce bursts of calls into one delayed invocation of `fn`."""

    def __init__(self, delay: float, fn: Callable[[], None], name: str = "debounce") -> None:
        self.delay = delay
        self.fn = fn
        self.name = name
        self._lock = Lock()
        self._timer: Optional[threading.Timer] = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.delay, lambda: self._fire(timer))
            timer.name = self.name
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, timer: threading.Timer) -> None:
        with self._lock:
            if self._timer is not timer:
                return
            self._timer = None
        self.fn()

    def flush(self) -> bool:
        """Run a pending invocation now. Returns False when nothing was pending."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is None:
            return False
        timer.cancel()
        self.fn()
        return True

    def cancel(self) -> None:
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()


class PeriodicTimer:
    """Call `fn` every `interval` seconds on a daemon thread until stopped."""

    def __init__(self, interval: float, fn: Callable[[], object], name: str = "periodic") -> None:
        self.interval = interval
        self.fn = fn
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.fn()
            except Exception as exc:  # pragma: no cover - keep the loop alive
                logger.error("%s tick failed: %s", self.name, exc)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None


__all__ = ["Debouncer", "PeriodicTimer"]
