"""
Bounded work queue drained by a fixed pool of publisher threads.

One producer submits items; N workers publish them concurrently. Completion
is tracked with an in-flight counter that is joined before the queue is
closed, so workers are never told to stop while work is still queued.

The first failure aborts the run: workers stop publishing and drain what is
left in the queue, submit() refuses new work, and join() re-raises the error
once everything has settled. A publish already in progress is not killed, but
it can watch stop_event and give up early (the retry loop stops retrying).
"""

import queue
import threading
from typing import Callable, Generic, List, Optional, TypeVar

from utils.logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_QUEUE_CAPACITY = 256

_CLOSE = object()


class InFlightCounter:
    """Counts submitted-but-unfinished items; wait() blocks until it is zero"""

    def __init__(self):
        self._count = 0
        self._cond = threading.Condition()

    @property
    def value(self) -> int:
        with self._cond:
            return self._count

    def add(self, n: int = 1) -> None:
        with self._cond:
            self._count += n
            if self._count < 0:
                raise ValueError("negative in-flight count")
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout=timeout)


class PushDispatcher(Generic[T]):
    """Fan items out to a fixed number of worker threads"""

    def __init__(
        self,
        publish: Callable[[T], object],
        workers: int = 4,
        capacity: int = DEFAULT_QUEUE_CAPACITY,
        on_complete: Optional[Callable[[T], None]] = None,
        poll_interval: float = 0.1,
    ):
        """
        Args:
            publish: Called once per item on a worker thread; raising aborts the run
            workers: Number of worker threads
            capacity: Maximum number of queued items before submit() blocks
            on_complete: Called on the worker thread after each successful publish
            poll_interval: How often a blocked submit() re-checks for an abort
        """
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")

        self._publish = publish
        self._on_complete = on_complete
        self._worker_count = workers
        self._poll_interval = poll_interval
        self._queue: "queue.Queue" = queue.Queue(maxsize=capacity)
        self._in_flight = InFlightCounter()
        self._threads: List[threading.Thread] = []
        self._abort = threading.Event()
        self._lock = threading.Lock()
        self._failure: Optional[BaseException] = None
        self._enqueued = 0
        self._completed = 0
        self._started = False
        self._closed = False

    @property
    def enqueued(self) -> int:
        return self._enqueued

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def in_flight(self) -> int:
        return self._in_flight.value

    @property
    def stop_event(self) -> threading.Event:
        """Set on abort; long-running publishes should give up once it is set"""
        return self._abort

    @property
    def failure(self) -> Optional[BaseException]:
        with self._lock:
            return self._failure

    def start(self) -> None:
        """Start the worker threads; must be called before submit()"""
        if self._started:
            raise RuntimeError("dispatcher already started")
        self._started = True
        for i in range(self._worker_count):
            thread = threading.Thread(target=self._worker, name=f"push-worker-{i + 1}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.debug(f"Started {self._worker_count} push workers")

    def submit(self, item: T) -> None:
        """Queue an item, blocking while the queue is full

        Raises:
            The recorded failure if the run has been aborted
        """
        if not self._started or self._closed:
            raise RuntimeError("dispatcher is not accepting work")

        self._in_flight.add()
        try:
            while True:
                self._raise_if_aborted()
                try:
                    self._queue.put(item, timeout=self._poll_interval)
                    break
                except queue.Full:
                    continue
        except BaseException:
            self._in_flight.done()
            raise
        self._enqueued += 1

    def abort(self, error: BaseException) -> None:
        """Stop publishing; the first recorded error is re-raised by join()"""
        with self._lock:
            if self._failure is None:
                self._failure = error
        self._abort.set()

    def join(self) -> None:
        """Wait for every submitted item, then close the queue and stop the workers

        Raises:
            The first recorded failure, if any
        """
        if self._started and not self._closed:
            self._in_flight.wait()
            self._closed = True
            for _ in self._threads:
                self._queue.put(_CLOSE)
            for thread in self._threads:
                thread.join()

        failure = self.failure
        if failure is not None:
            raise failure

    def _raise_if_aborted(self) -> None:
        if self._abort.is_set():
            raise self.failure

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            if item is _CLOSE:
                return
            try:
                if self._abort.is_set():
                    continue
                self._publish(item)
                with self._lock:
                    self._completed += 1
                if self._on_complete is not None:
                    self._on_complete(item)
            except Exception as e:
                if self._abort.is_set():
                    logger.debug(f"Publish of {item} stopped after abort: {e}")
                else:
                    logger.error(f"Aborting: publish of {item} failed")
                self.abort(e)
            finally:
                self._in_flight.done()
