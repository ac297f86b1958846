"""Event driven control loop around the reconciler.

Watch events for either resource and periodic resync ticks all collapse onto
a single work queue key, because the reconciler always reads current state
rather than the event payload. One worker drains the queue, so at most one
pass runs at a time.
"""

import threading
import time
from collections.abc import Callable

from provisioning_controller.exceptions import ReconcileCancelledError, StoreAccessError
from provisioning_controller.logging_config import get_logger
from provisioning_controller.models.infrastructure import INFRASTRUCTURE_NAME
from provisioning_controller.models.outcome import ReconcileOutcome
from provisioning_controller.models.provisioning import PROVISIONING_SINGLETON_NAME
from provisioning_controller.reconciler import ProvisioningReconciler, ReconcileContext
from provisioning_controller.store import ResourceKind, WatchEvent

logger = get_logger(__name__)

RECONCILE_KEY = PROVISIONING_SINGLETON_NAME

# Only these instances trigger a pass; everything else of the kind is ignored
WATCHED_OBJECTS = {
    ResourceKind.INFRASTRUCTURE: INFRASTRUCTURE_NAME,
    ResourceKind.PROVISIONING: PROVISIONING_SINGLETON_NAME,
}

# The controller writes the status of these kinds itself, so status-only
# changes to them never trigger a pass
SELF_STATUS_KINDS = {ResourceKind.PROVISIONING}

# Metadata the API server rewrites on every write, status writes included
_VOLATILE_METADATA = ("resourceVersion", "managedFields")


def desired_state(obj: dict) -> dict:
    """Return an object without its status and server bookkeeping."""
    state = {k: v for k, v in (obj or {}).items() if k != "status"}
    metadata = state.get("metadata")
    if isinstance(metadata, dict):
        state["metadata"] = {k: v for k, v in metadata.items() if k not in _VOLATILE_METADATA}
    return state


class WorkQueue:
    """Coalescing queue with delayed adds.

    A key is held at most once. Adding a key that is being processed marks it
    dirty, and it is queued again when the worker calls ``done``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._cond = threading.Condition()
        self._ready: list[str] = []
        self._queued: set[str] = set()
        self._processing: set[str] = set()
        self._dirty: set[str] = set()
        self._delayed: dict[str, float] = {}
        self._shutdown = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._ready)

    def _add_locked(self, key: str) -> None:
        if key in self._processing:
            self._dirty.add(key)
            return
        if key not in self._queued:
            self._queued.add(key)
            self._ready.append(key)
            self._cond.notify()

    def _promote_due_locked(self) -> float | None:
        """Move due delayed keys to ready; return seconds until the next one."""
        now = self._clock()
        next_due = None
        for key, due in list(self._delayed.items()):
            if due <= now:
                del self._delayed[key]
                self._add_locked(key)
            elif next_due is None or due - now < next_due:
                next_due = due - now
        return next_due

    def add(self, key: str) -> None:
        with self._cond:
            if not self._shutdown:
                self._add_locked(key)

    def add_after(self, key: str, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutdown:
                return
            due = self._clock() + delay
            # keep the earliest pending retry
            if key not in self._delayed or due < self._delayed[key]:
                self._delayed[key] = due
            self._cond.notify()

    def pending_delay(self, key: str) -> float | None:
        """Seconds until a delayed add of ``key`` fires, if one is pending."""
        with self._cond:
            due = self._delayed.get(key)
            return None if due is None else max(0.0, due - self._clock())

    def get(self, timeout: float | None = None) -> str | None:
        """Block until a key is ready; None on timeout or shutdown."""
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                next_due = self._promote_due_locked()
                if self._ready:
                    key = self._ready.pop(0)
                    self._queued.discard(key)
                    self._processing.add(key)
                    return key
                if self._shutdown:
                    return None

                wait = next_due
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._dirty.discard(key)
                self._add_locked(key)

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()


class BackoffRateLimiter:
    """Per-key exponential backoff: base * 2**failures, capped at max."""

    def __init__(self, base_seconds: float, max_seconds: float):
        self.base_seconds = base_seconds
        self.max_seconds = max_seconds
        self._failures: dict[str, int] = {}
        self._lock = threading.Lock()

    def when(self, key: str, base_seconds: float | None = None) -> float:
        base = self.base_seconds if base_seconds is None else base_seconds
        with self._lock:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(base * (2**failures), self.max_seconds)

    def forget(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)

    def failures(self, key: str) -> int:
        with self._lock:
            return self._failures.get(key, 0)


class Controller:
    """Drives the reconciler from watch events, resync ticks and retries."""

    def __init__(
        self,
        reconciler: ProvisioningReconciler,
        queue: WorkQueue | None = None,
        rate_limiter: BackoffRateLimiter | None = None,
        watch_retry_seconds: float = 5.0,
    ):
        settings = reconciler.settings
        self.reconciler = reconciler
        self.queue = queue or WorkQueue()
        self.rate_limiter = rate_limiter or BackoffRateLimiter(
            settings.retry_base_seconds, settings.retry_max_seconds
        )
        self.watch_retry_seconds = watch_retry_seconds
        self._threads: list[threading.Thread] = []
        # Last desired state seen per kind, for telling status-only updates apart
        self._seen: dict[ResourceKind, dict] = {}

    @property
    def settings(self):
        return self.reconciler.settings

    def observe(self, kind: ResourceKind, obj: dict | None) -> None:
        """Remember the desired state of a watched object."""
        if kind not in SELF_STATUS_KINDS:
            return
        if obj is None:
            self._seen.pop(kind, None)
        else:
            self._seen[kind] = desired_state(obj)

    def handle_event(self, event: WatchEvent) -> bool:
        """Queue a pass for events on the watched singletons.

        Updates that only touch the status of a kind the controller writes
        itself are ignored, so a pass never triggers itself.

        Returns:
            True if the event triggered a pass
        """
        if event.name != WATCHED_OBJECTS.get(event.kind):
            logger.debug(f"Ignoring {event.type} of {event.kind.value} {event.name!r}")
            return False

        if event.kind in SELF_STATUS_KINDS:
            previous = self._seen.get(event.kind)
            self.observe(event.kind, None if event.type == "DELETED" else event.object)
            if event.type == "MODIFIED" and previous == self._seen.get(event.kind):
                logger.debug(f"Ignoring status update of {event.kind.value} {event.name!r}")
                return False

        logger.debug(f"{event.type} {event.kind.value} {event.name!r}, queueing reconcile")
        self.queue.add(RECONCILE_KEY)
        return True

    def process_next(
        self, stop_event: threading.Event, timeout: float | None = None
    ) -> ReconcileOutcome | None:
        """
        Run one pass for the next queued key and schedule any requeue.

        Returns:
            The outcome, or None if nothing was queued or the pass did not finish.
        """
        key = self.queue.get(timeout)
        if key is None:
            return None

        try:
            ctx = ReconcileContext.with_timeout(
                self.settings.reconcile_timeout_seconds, cancel=stop_event
            )
            try:
                outcome = self.reconciler.reconcile(ctx)
            except ReconcileCancelledError as e:
                logger.warning(e.message)
                if not stop_event.is_set():
                    self.queue.add_after(key, self.rate_limiter.when(key))
                return None
            except Exception as e:
                # A broken pass must not take the controller down
                logger.error(f"Unexpected error during reconcile: {e}", exc_info=True)
                self.queue.add_after(key, self.rate_limiter.when(key))
                return None

            if outcome.error is not None:
                delay = self.rate_limiter.when(key, outcome.requeue_after)
                logger.info(f"Requeueing {key!r} in {delay:.1f}s after {outcome.error.value}")
                self.queue.add_after(key, delay)
            else:
                self.rate_limiter.forget(key)
                if outcome.requeue_after:
                    self.queue.add_after(key, outcome.requeue_after)
            return outcome
        finally:
            self.queue.done(key)

    def _watch_loop(self, kind: ResourceKind, stop_event: threading.Event) -> None:
        store = self.reconciler.context.store
        while not stop_event.is_set():
            try:
                for event in store.watch(kind, stop_event):
                    self.handle_event(event)
                # The server closes watches periodically; catch up on anything missed
                self.queue.add(RECONCILE_KEY)
            except StoreAccessError as e:
                logger.warning(f"Watch of {kind.value} failed: {e.message}")
                stop_event.wait(self.watch_retry_seconds)
            except Exception as e:
                # Any other stream failure also restarts the watch
                logger.error(f"Unexpected error watching {kind.value}: {e}", exc_info=True)
                stop_event.wait(self.watch_retry_seconds)

    def _resync_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.settings.resync_seconds):
            logger.debug("Periodic resync")
            self.queue.add(RECONCILE_KEY)

    def start(self, stop_event: threading.Event) -> None:
        """Start the watch and resync threads."""
        store = self.reconciler.context.store
        for kind in SELF_STATUS_KINDS:
            try:
                self.observe(kind, store.get(kind, WATCHED_OBJECTS[kind]))
            except StoreAccessError as e:
                logger.warning(f"Could not read {kind.value} before watching: {e.message}")

        for kind in WATCHED_OBJECTS:
            thread = threading.Thread(
                target=self._watch_loop,
                args=(kind, stop_event),
                name=f"watch-{kind.value.lower()}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

        resync = threading.Thread(
            target=self._resync_loop, args=(stop_event,), name="resync", daemon=True
        )
        resync.start()
        self._threads.append(resync)

    def run(self, stop_event: threading.Event) -> None:
        """Run until ``stop_event`` is set."""
        logger.info("Starting provisioning controller")
        self.start(stop_event)
        self.queue.add(RECONCILE_KEY)
        try:
            while not stop_event.is_set():
                self.process_next(stop_event, timeout=0.5)
        finally:
            self.queue.shutdown()
            for thread in self._threads:
                thread.join(timeout=5)
            logger.info("Provisioning controller stopped")
