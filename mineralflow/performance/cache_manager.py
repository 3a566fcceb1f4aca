"""
Resource Cache & Refresh Engine for MineralFlow Operations
Mandate: one shared fetch per stale collection, graceful degradation on failure

CRITICAL PRINCIPLE:
Every backend read goes through a ResourceCache. The cache decides when to
hit the network and what to show when the network fails: last-known-good
data first, the synthetic dataset second.
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from mineralflow.core.result import INTERNAL, Err, FetchFailure, FetchResult

logger = logging.getLogger(__name__)

DATA_SOURCE_LIVE = "live"
DATA_SOURCE_MOCK = "mock"
DATA_SOURCE_NONE = "none"

MAX_RETRIES_LIMIT = 3


class CachePolicyError(ValueError):
    """Raised when a collection is registered with an unusable policy."""
    pass


@dataclass(frozen=True)
class CachePolicy:
    """Per-collection freshness and retry policy (all durations in seconds)."""

    stale_after: float = 30.0
    gc_after: float = 300.0
    refresh_interval: Optional[float] = None
    max_retries: int = 1
    retry_delay: float = 1.0

    def validate(self) -> None:
        if self.stale_after < 0:
            raise CachePolicyError(f"stale_after must be >= 0, got {self.stale_after}")
        if self.gc_after < self.stale_after:
            raise CachePolicyError(
                f"gc_after ({self.gc_after}) must be >= stale_after ({self.stale_after})"
            )
        if not 0 <= self.max_retries <= MAX_RETRIES_LIMIT:
            raise CachePolicyError(f"max_retries must be between 0 and {MAX_RETRIES_LIMIT}")
        if self.retry_delay < 0:
            raise CachePolicyError("retry_delay must be >= 0")
        if self.refresh_interval is not None and self.refresh_interval <= 0:
            raise CachePolicyError("refresh_interval must be positive")


@dataclass(frozen=True)
class CollectionSnapshot:
    """What a reader sees for one collection at one instant."""

    key: str
    value: Any
    error: Optional[FetchFailure]
    data_source: str
    fetched_at: Optional[datetime]
    is_loading: bool

    @property
    def is_mock(self) -> bool:
        return self.data_source == DATA_SOURCE_MOCK


Listener = Callable[[CollectionSnapshot], None]


class _Entry:
    """Mutable per-key state. Only touched while holding the cache lock."""

    def __init__(self, key, loader, policy, fallback, depends_on):
        self.key = key
        self.loader = loader
        self.policy = policy
        self.fallback = fallback
        self.depends_on = tuple(depends_on)
        self.listeners: List[Listener] = []
        self.reset()

    def reset(self):
        self.value = None
        self.has_value = False
        self.error = None
        self.data_source = DATA_SOURCE_NONE
        self.fetched_at = None
        self.checked_at = None
        self.invalidated = False
        self.last_access = None
        self.generation = 0
        self.inflight = None


class ResourceCache:
    """
    Session-wide store of backend collections.

    DESIGN:
    1. One re-entrant lock guards the whole store
    2. Network calls run outside the lock
    3. Concurrent stale readers share one in-flight Future
    4. Every fetch carries a generation; only the newest may write
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.RLock()
        self._entries: Dict[str, _Entry] = {}
        self._refresh_thread: Optional[threading.Thread] = None
        self._refresh_stop = threading.Event()

    # ==================================================
    # REGISTRATION
    # ==================================================

    def register(
        self,
        key: str,
        loader: Callable[[], FetchResult],
        policy: Optional[CachePolicy] = None,
        fallback: Optional[Callable[[], Any]] = None,
        depends_on: Iterable[str] = (),
    ) -> None:
        """
        Register a collection.

        `loader` returns Ok(value) or Err(FetchFailure). `fallback` supplies
        the synthetic value used when no value was ever fetched.
        """
        policy = policy or CachePolicy()
        policy.validate()
        with self._lock:
            self._entries[key] = _Entry(key, loader, policy, fallback, depends_on)
        logger.debug(f"Registered cache key '{key}' ({policy})")

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def policy(self, key: str) -> CachePolicy:
        with self._lock:
            return self._entries[key].policy

    # ==================================================
    # READS
    # ==================================================

    def read(self, key: str, force: bool = False) -> CollectionSnapshot:
        """
        Current snapshot of `key`, fetching first when stale or forced.

        Blocks until the fetch this call started or joined has finished.
        """
        with self._lock:
            entry = self._entries[key]
            entry.last_access = self._clock()

            if not force and self._is_fresh(entry):
                logger.debug(f"Cache hit for '{key}'")
                return self._snapshot(entry)

            if not force and entry.inflight is not None:
                future = entry.inflight
                owner = False
            else:
                future, generation = self._begin_fetch(entry)
                owner = True

        if owner:
            self._run_fetch(entry, generation, future)

        future.result()
        return self.snapshot(key)

    def snapshot(self, key: str) -> CollectionSnapshot:
        """Snapshot without triggering a fetch."""
        with self._lock:
            return self._snapshot(self._entries[key])

    def is_stale(self, key: str) -> bool:
        with self._lock:
            return not self._is_fresh(self._entries[key])

    def _is_fresh(self, entry: _Entry) -> bool:
        if entry.checked_at is None or entry.invalidated:
            return False
        return self._clock() - entry.checked_at < entry.policy.stale_after

    def _snapshot(self, entry: _Entry) -> CollectionSnapshot:
        return CollectionSnapshot(
            key=entry.key,
            value=entry.value,
            error=entry.error,
            data_source=entry.data_source,
            fetched_at=datetime.fromtimestamp(entry.fetched_at) if entry.fetched_at is not None else None,
            is_loading=entry.inflight is not None,
        )

    # ==================================================
    # FETCHING
    # ==================================================

    def _begin_fetch(self, entry: _Entry):
        # Caller holds the lock. A newer fetch supersedes any older one.
        entry.generation += 1
        entry.inflight = Future()
        return entry.inflight, entry.generation

    def _is_current(self, entry: _Entry, generation: int) -> bool:
        with self._lock:
            return entry.generation == generation

    def _call_loader(self, entry: _Entry) -> FetchResult:
        try:
            return entry.loader()
        except Exception as e:
            logger.exception(f"Loader for '{entry.key}' raised")
            return Err(FetchFailure(kind=INTERNAL, message=str(e), operation=entry.key))

    def _fetch_with_retries(self, entry: _Entry, generation: int) -> Optional[FetchResult]:
        attempts = 1 + entry.policy.max_retries
        result = None
        for attempt in range(1, attempts + 1):
            result = self._call_loader(entry)
            if result.ok:
                return result

            logger.warning(f"Fetch '{entry.key}' attempt {attempt}/{attempts} failed: {result.failure}")

            if attempt < attempts:
                self._sleep(entry.policy.retry_delay)
                if not self._is_current(entry, generation):
                    return None
        return result

    def _run_fetch(self, entry: _Entry, generation: int, future: Future) -> None:
        try:
            result = self._fetch_with_retries(entry, generation)
            with self._lock:
                if entry.generation != generation:
                    logger.info(f"Discarding superseded fetch of '{entry.key}'")
                    snapshot = None
                else:
                    try:
                        self._apply(entry, result)
                    finally:
                        entry.inflight = None
                    snapshot = self._snapshot(entry)
        finally:
            future.set_result(None)

        if snapshot is not None:
            self._notify(entry, snapshot)

    def _apply(self, entry: _Entry, result: FetchResult) -> None:
        now = self._clock()
        entry.checked_at = now
        entry.invalidated = False

        if result.ok:
            entry.value = result.value
            entry.has_value = True
            entry.error = None
            entry.data_source = DATA_SOURCE_LIVE
            entry.fetched_at = now
            logger.info(f"Fetched '{entry.key}'")
            return

        entry.error = result.failure
        if entry.has_value:
            logger.warning(f"Keeping last known value of '{entry.key}' after failure")
            return

        if entry.fallback is not None:
            entry.value = entry.fallback()
            entry.has_value = True
            entry.data_source = DATA_SOURCE_MOCK
            logger.warning(f"Using synthetic data for '{entry.key}'")
        else:
            logger.error(f"No data for '{entry.key}': {result.failure}")

    # ==================================================
    # INVALIDATION & LOCAL PATCHES
    # ==================================================

    def dependents_of(self, key: str) -> Set[str]:
        """Every key that depends on `key`, directly or transitively."""
        with self._lock:
            found: Set[str] = set()
            pending = [key]
            while pending:
                current = pending.pop()
                for entry in self._entries.values():
                    if current in entry.depends_on and entry.key not in found:
                        found.add(entry.key)
                        pending.append(entry.key)
            found.discard(key)
            return found

    def invalidate(self, key: str) -> Set[str]:
        """
        Mark `key` and its dependents stale and supersede in-flight fetches.

        The next read of each refetches. Returns the invalidated keys.
        """
        notifications = []
        with self._lock:
            keys = {key} | self.dependents_of(key)
            for name in keys:
                entry = self._entries.get(name)
                if entry is None:
                    continue
                entry.invalidated = True
                if entry.inflight is not None:
                    entry.generation += 1
                    entry.inflight = None
                notifications.append((entry, self._snapshot(entry)))

        logger.info(f"Invalidated {sorted(keys)}")
        for entry, snapshot in notifications:
            self._notify(entry, snapshot)
        return keys

    def patch(self, key: str, fn: Callable[[Any], Any]) -> CollectionSnapshot:
        """Replace the cached value with fn(current value)."""
        with self._lock:
            entry = self._entries[key]
            entry.value = fn(entry.value)
            entry.has_value = True
            entry.last_access = self._clock()
            snapshot = self._snapshot(entry)
        self._notify(entry, snapshot)
        return snapshot

    def remove(self, key: str) -> None:
        """Drop the cached data of `key`. The registration is kept."""
        with self._lock:
            entry = self._entries[key]
            if entry.inflight is not None:
                entry.inflight = None
            generation = entry.generation
            entry.reset()
            # Keep superseding anything still running for the old data
            entry.generation = generation + 1

    # ==================================================
    # SUBSCRIPTIONS
    # ==================================================

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """Call `listener` with a snapshot on every change. Returns an unsubscribe."""
        with self._lock:
            self._entries[key].listeners.append(listener)
        return lambda: self.unsubscribe(key, listener)

    def unsubscribe(self, key: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._entries[key].listeners
            if listener in listeners:
                listeners.remove(listener)

    def subscriber_count(self, key: str) -> int:
        with self._lock:
            return len(self._entries[key].listeners)

    def _notify(self, entry: _Entry, snapshot: CollectionSnapshot) -> None:
        with self._lock:
            listeners = list(entry.listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"Listener for '{entry.key}' failed")

    # ==================================================
    # MAINTENANCE
    # ==================================================

    def collect_garbage(self) -> List[str]:
        """Drop data unused for gc_after with no subscribers and no fetch in flight."""
        collected = []
        with self._lock:
            now = self._clock()
            for entry in self._entries.values():
                if not entry.has_value or entry.listeners or entry.inflight is not None:
                    continue
                if entry.last_access is not None and now - entry.last_access < entry.policy.gc_after:
                    continue
                generation = entry.generation
                entry.reset()
                entry.generation = generation
                collected.append(entry.key)

        if collected:
            logger.info(f"Garbage collected {collected}")
        return collected

    def revalidate_active(self) -> List[str]:
        """Refetch subscribed collections whose refresh interval has elapsed."""
        due = []
        with self._lock:
            now = self._clock()
            for entry in self._entries.values():
                interval = entry.policy.refresh_interval
                if interval is None or not entry.listeners or entry.inflight is not None:
                    continue
                if entry.checked_at is None or entry.invalidated or now - entry.checked_at >= interval:
                    due.append(entry.key)

        for key in due:
            self.read(key, force=True)
        return due

    def start_background_refresh(self, tick: float = 1.0) -> None:
        """Run revalidation and garbage collection on a daemon thread."""
        if self._refresh_thread is not None and self._refresh_thread.is_alive():
            return

        self._refresh_stop.clear()

        def loop():
            logger.info("Background refresh started")
            while not self._refresh_stop.wait(tick):
                try:
                    self.revalidate_active()
                    self.collect_garbage()
                except Exception:
                    logger.exception("Background refresh cycle failed")
            logger.info("Background refresh stopped")

        self._refresh_thread = threading.Thread(target=loop, name="mineralflow-refresh", daemon=True)
        self._refresh_thread.start()

    def stop_background_refresh(self, timeout: Optional[float] = None) -> None:
        self._refresh_stop.set()
        thread = self._refresh_thread
        if thread is not None:
            thread.join(timeout)
        self._refresh_thread = None
