# mineralflow/async_engine/polling_worker.py

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Optional

from mineralflow.core.result import Err, Ok

logger = logging.getLogger(__name__)


# ==================================================
# WORKER CONFIG
# ==================================================

DEFAULT_INTERVAL_SECONDS = 30
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_DELAY_SECONDS = 1


class CancellationToken:
    """Cooperative cancellation for one request."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True when cancelled meanwhile."""
        return self._event.wait(seconds)


@dataclass(frozen=True)
class PollingState:
    data: Any = None
    loading: bool = False
    error: Optional[str] = None
    last_updated: Optional[datetime] = None
    is_polling: bool = False


class PollingWorker:
    """
    Periodic fetch with bounded retry.

    Responsibilities:
    - Fetch immediately (optional), then every `interval` seconds
    - Retry failed fetches `retry_count` times, `retry_delay` apart
    - Cancel the previous request whenever a new one starts
    - NEVER let a fetch error escape the worker thread
    """

    def __init__(
        self,
        fetch_fn: Callable[[], Any],
        interval: float = DEFAULT_INTERVAL_SECONDS,
        enabled: bool = True,
        immediate: bool = True,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        on_update: Optional[Callable[[PollingState], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.fetch_fn = fetch_fn
        self.interval = interval
        self.enabled = enabled
        self.immediate = immediate
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self.on_update = on_update
        self._clock = clock

        self._lock = threading.Lock()
        self._state = PollingState()
        self._token: Optional[CancellationToken] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ==================================================
    # STATE
    # ==================================================

    @property
    def state(self) -> PollingState:
        with self._lock:
            return self._state

    def _update(self, **changes) -> None:
        with self._lock:
            self._state = replace(self._state, **changes)
            state = self._state
        if self.on_update is not None:
            try:
                self.on_update(state)
            except Exception:
                logger.exception("Polling on_update callback failed")

    # ==================================================
    # FETCHING
    # ==================================================

    def _new_token(self) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            previous, self._token = self._token, token
        if previous is not None:
            previous.cancel()
        return token

    def _attempt(self):
        """(succeeded, data, error message) for one call of fetch_fn."""
        try:
            result = self.fetch_fn()
        except Exception as e:
            logger.warning(f"Polling fetch raised: {str(e)}")
            return False, None, str(e)

        if result is None:
            return False, None, "no data returned"
        if isinstance(result, (Ok, Err)):
            if result.ok:
                return True, result.value, None
            return False, None, str(result.failure)
        return True, result, None

    def poll_once(self) -> bool:
        """
        One fetch cycle with retries. Returns True when fresh data was applied.

        A cycle whose token is cancelled stops retrying and leaves the
        state to whichever request replaced it.
        """
        token = self._new_token()
        self._update(loading=True)

        error = None
        for attempt in range(self.retry_count + 1):
            if token.cancelled:
                return False

            succeeded, data, error = self._attempt()
            if token.cancelled:
                logger.info("Discarding result of cancelled poll")
                return False

            if succeeded:
                self._update(data=data, loading=False, error=None, last_updated=self._clock())
                return True

            if attempt < self.retry_count:
                logger.info(f"Poll attempt {attempt + 1} failed, retrying in {self.retry_delay}s")
                if token.wait(self.retry_delay):
                    return False

        logger.error(f"Polling failed after {self.retry_count + 1} attempts: {error}")
        self._update(loading=False, error=error)
        return False

    def refetch(self) -> bool:
        """Fetch now, cancelling any request in flight."""
        return self.poll_once()

    # ==================================================
    # LIFECYCLE
    # ==================================================

    def start(self) -> None:
        if not self.enabled:
            logger.info("Polling disabled, not starting")
            return
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        self._update(is_polling=True)

        def loop():
            if self.immediate:
                self.poll_once()
            while not self._stop.wait(self.interval):
                self.poll_once()

        self._thread = threading.Thread(target=loop, name="mineralflow-poller", daemon=True)
        self._thread.start()
        logger.info(f"Polling started (every {self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the timer and cancel the request in flight."""
        self._stop.set()
        with self._lock:
            token = self._token
        if token is not None:
            token.cancel()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        self._update(is_polling=False, loading=False)
        logger.info("Polling stopped")
