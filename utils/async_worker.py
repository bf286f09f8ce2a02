import logging
import threading
from queue import Queue
from typing import Protocol

from collections.abc import Callable

logger = logging.getLogger(__name__)


class EngineWorker(Protocol):
    def enqueue_task(
        self,
        task_function: Callable,
        callback: Callable | None = None,
        args=(),
        kwargs=None,
    ) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class ThreadedAsyncWorker:
    """
    Runs engine calls one at a time on a dedicated thread (FIFO) and invokes
    an optional callback with the result, or with the exception raised.
    """

    def __init__(self, name: str):
        self.task_queue: Queue = Queue()
        self.callback_lock = threading.Lock()
        self.worker_thread = threading.Thread(target=self._run, daemon=True, name=name)
        self._started = False

    def _run(self) -> None:
        while True:
            task = self.task_queue.get()
            if task is None:
                break

            task_function, args, kwargs, callback = task
            try:
                result = _process(task_function, args, kwargs)
            except Exception as exc:  # propagate errors via callback
                result = exc

            if callback:
                with self.callback_lock:
                    try:
                        callback(result)
                    except Exception:
                        logger.exception("Callback du worker %s en erreur", self.worker_thread.name)

    def enqueue_task(
        self,
        task_function: Callable,
        callback: Callable | None = None,
        args=(),
        kwargs=None,
    ) -> None:
        if kwargs is None:
            kwargs = {}
        self.task_queue.put((task_function, args, kwargs, callback))

    def stop(self) -> None:
        if not self._started:
            return
        self.task_queue.put(None)
        if threading.current_thread() is not self.worker_thread:
            self.worker_thread.join()
        self._started = False

    def start(self) -> None:
        if not self._started:
            self._started = True
            self.worker_thread.start()

    @property
    def is_started(self) -> bool:
        return self._started


class InlineWorker:
    """Same interface, but runs each task immediately on the caller's thread."""

    def __init__(self, name: str = "inline"):
        self.name = name

    def enqueue_task(
        self,
        task_function: Callable,
        callback: Callable | None = None,
        args=(),
        kwargs=None,
    ) -> None:
        try:
            result = _process(task_function, args, kwargs or {})
        except Exception as exc:
            result = exc
        if callback:
            callback(result)

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


def _process(task_function: Callable, args, kwargs):
    if isinstance(args, tuple):
        return task_function(*args, **kwargs)
    return task_function(args, **kwargs)
