"""
Bounded, best-effort queue for side effects (mail, geo enrichment).

A task that raises is logged and dropped; nothing is retried. When the queue
is full new tasks are dropped with a warning so request handlers never block
on side effects.
"""
import logging
import queue
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class SideEffectQueue:
    def __init__(self, maxsize: int = 1000):
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._worker: Optional[threading.Thread] = None
        self.dropped = 0
        self.failed = 0
        self.completed = 0

    def submit(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        try:
            self._queue.put_nowait((name, func, args, kwargs))
        except queue.Full:
            self.dropped += 1
            logger.warning("Side-effect queue full, dropping %s", name)
            return False
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    def _execute(self, task: Any) -> None:
        name, func, args, kwargs = task
        try:
            func(*args, **kwargs)
            self.completed += 1
        except Exception:
            self.failed += 1
            logger.exception("Side effect %s failed", name)

    def run_pending(self) -> int:
        """Run queued tasks on the calling thread; returns how many ran."""
        ran = 0
        while True:
            try:
                task = self._queue.get_nowait()
            except queue.Empty:
                return ran
            try:
                if task is not _STOP:
                    self._execute(task)
                    ran += 1
            finally:
                self._queue.task_done()

    def _loop(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                self._execute(task)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._loop, name="side-effects", daemon=True)
        self._worker.start()

    def stop(self, timeout: float = 5.0) -> None:
        if self._worker is None:
            return
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Side-effect queue still full at shutdown, %d tasks abandoned", self.pending())
        self._worker.join(timeout)
        self._worker = None
