"""
Cancellable, progress-reporting unit of work.

A Task runs its _do_task() body once, records how it ended and keeps the
result or the error. Long loops call _check_for_cancel() so cancel() from
another thread stops them at the next check.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, List, Optional

from .errors import IllegalStateError

__all__ = [
    "TaskOutcome",
    "TaskCancelledError",
    "TaskError",
    "Task",
    "ProgressHandler",
]

logger = logging.getLogger(__name__)


class TaskOutcome(Enum):
    NOT_FINISHED = "not finished"
    SUCCESS = "success"
    CANCELLED = "cancelled"
    ERROR = "error"


class TaskCancelledError(Exception):
    """Raised inside a task body when it notices it was cancelled."""


class TaskError(RuntimeError):
    """Expected failure reported by a task body through _finish_with_error()."""


ProgressListener = Callable[["Task", float], None]
MessageListener = Callable[["Task", str], None]


class Task(ABC):
    """
    Base class for long-running operations.

    Subclasses implement _do_task() and return the result. run() does not raise
    for Exception failures inside the body; the outcome, error and
    error_message properties tell what happened, and get() re-raises. A
    BaseException such as KeyboardInterrupt ends the task as ERROR and
    propagates out of run().
    """

    def __init__(self):
        self._outcome = TaskOutcome.NOT_FINISHED
        self._error: Optional[BaseException] = None
        self._error_message: Optional[str] = None
        self._result: Any = None
        self._cancelled = threading.Event()
        self._ended = threading.Event()
        self._lock = threading.Lock()
        self._begun = False
        self._running = False
        self._begin_progress = 0.0
        self._end_progress = 1.0
        self._progress = 0.0
        self._progress_listeners: List[ProgressListener] = []
        self._message_listeners: List[MessageListener] = []

    def task_name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def _do_task(self):
        """Body of the task; returns the result."""

    # ------------------------------------------------------------ execution

    def run(self) -> None:
        """
        Execute the body once in the calling thread.

        @raises IllegalStateError: if the task is running or has already run
                                   without a reset()
        """
        with self._lock:
            if self._running or self._begun:
                raise IllegalStateError(f"{self.task_name()} has already been started")
            self._running = True
            self._begun = True
        start = time.perf_counter()
        try:
            self._progress = self._begin_progress
            self._check_for_cancel()
            self._result = self._do_task()
            self._outcome = TaskOutcome.SUCCESS
            self.post_message(f"{time.perf_counter() - start:.3f} s to complete task")
        except TaskCancelledError:
            self._outcome = TaskOutcome.CANCELLED
            self.post_message(f"{self.task_name()} cancelled")
        except Exception as e:
            if not isinstance(e, TaskError):
                logger.exception("Exception in task %s", self.task_name())
            self._record_error(e)
        except BaseException as e:
            # interpreter exits and interrupts still end the task, then propagate
            self._record_error(e)
            raise
        finally:
            with self._lock:
                self._running = False
            self._ended.set()

    def _record_error(self, e: BaseException) -> None:
        self._result = None
        self._error = e
        self._error_message = str(e) or repr(e)
        self._outcome = TaskOutcome.ERROR

    def get(self, timeout: Optional[float] = None):
        """
        Wait for the task to end and return its result.

        @raises TaskCancelledError: if the task was cancelled
        @raises TimeoutError: if timeout seconds pass first
        @raises Exception: the error that ended the task
        """
        if not self._ended.wait(timeout):
            raise TimeoutError(f"{self.task_name()} did not finish in {timeout} s")
        if self._outcome == TaskOutcome.CANCELLED:
            raise TaskCancelledError(f"{self.task_name()} was cancelled")
        if self._outcome == TaskOutcome.ERROR:
            raise self._error
        return self._result

    def cancel(self) -> bool:
        """Ask the task to stop. Returns False if it had already ended or was cancelled."""
        if self._ended.is_set() or self._cancelled.is_set():
            return False
        self._cancelled.set()
        return True

    def reset(self) -> None:
        """Make an ended task runnable again."""
        with self._lock:
            if self._running:
                raise IllegalStateError("cannot reset while running")
            self._outcome = TaskOutcome.NOT_FINISHED
            self._error = None
            self._error_message = None
            self._result = None
            self._begun = False
            self._cancelled.clear()
            self._ended.clear()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def is_begun(self) -> bool:
        return self._begun

    def is_ended(self) -> bool:
        return self._ended.is_set()

    def _check_for_cancel(self) -> None:
        if self._cancelled.is_set():
            raise TaskCancelledError()

    def _finish_with_error(self, message: str) -> None:
        raise TaskError(message)

    @property
    def outcome(self) -> TaskOutcome:
        return self._outcome

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def result(self):
        return self._result

    # ------------------------------------------------------------- progress

    def set_progress_endpoints(self, begin: float, end: float) -> None:
        """
        Range the task's progress runs over; must be set before run().
        """
        if begin != begin or end != end or begin < 0.0 or begin > end:
            raise ValueError(f"invalid progress endpoints (begin == {begin}, end == {end})")
        if self._begun:
            raise IllegalStateError("endpoints must be set before running the task")
        self._begin_progress = begin
        self._end_progress = end

    @property
    def begin_progress(self) -> float:
        return self._begin_progress

    @property
    def end_progress(self) -> float:
        return self._end_progress

    @property
    def progress(self) -> float:
        return self._progress

    def add_progress_listener(self, listener: ProgressListener) -> None:
        self._progress_listeners.append(listener)

    def remove_progress_listener(self, listener: ProgressListener) -> None:
        self._progress_listeners.remove(listener)

    def add_message_listener(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        self._message_listeners.remove(listener)

    def post_progress(self, value: float) -> None:
        self._progress = value
        for listener in list(self._progress_listeners):
            listener(self, value)

    def post_message(self, message: str) -> None:
        logger.info("%s: %s", self.task_name(), message)
        for listener in list(self._message_listeners):
            listener(self, message)


class ProgressHandler:
    """
    Turns step counts or fractions into progress values for a task.

    Values run from begin to end. Posts are throttled: a value goes out only
    if it moved at least min_progress_increment since the last post or
    min_time_increment seconds have passed. post_end() always goes out.

    @param task: receiver of the progress values (may be None)
    @param begin: value for 0% (defaults to the task's begin progress)
    @param end: value for 100% (defaults to the task's end progress)
    @param steps: number of steps between begin and end; 0 if only fractions are posted
    """

    DEFAULT_MIN_PROGRESS_INC = 0.01
    DEFAULT_MIN_TIME_INC = 0.5

    def __init__(self, task: Optional[Task], begin: Optional[float] = None,
                 end: Optional[float] = None, steps: int = 0):
        self.task = task
        if begin is None:
            begin = task.begin_progress if task is not None else 0.0
        if end is None:
            end = task.end_progress if task is not None else 1.0
        self.begin = begin
        self.end = end
        self.current = begin
        self.step_increment = (end - begin) / steps if steps > 0 else 0.0
        self.min_progress_increment = self.DEFAULT_MIN_PROGRESS_INC
        self.min_time_increment = self.DEFAULT_MIN_TIME_INC
        self._last_progress = -float("inf")
        self._last_time = 0.0

    def _ok_to_post(self, value: float) -> bool:
        return (value - self._last_progress >= self.min_progress_increment
                or time.monotonic() - self._last_time >= self.min_time_increment)

    def _post_value(self, value: float, force: bool = False) -> None:
        if force or self._ok_to_post(value):
            self._last_progress = value
            self._last_time = time.monotonic()
            if self.task is not None:
                self.task.post_progress(value)

    def post_message(self, message: str) -> None:
        if self.task is not None:
            self.task.post_message(message)

    def post_begin(self) -> None:
        if self.current == self.begin:
            self.post_fraction(0.0)

    def post_step(self) -> None:
        self.post_steps(1)

    def post_steps(self, steps: int) -> None:
        if steps >= 0:
            self.current = min(self.end, self.current + steps * self.step_increment)
            self._post_value(self.current)

    def post_fraction(self, fraction: float) -> None:
        if 0.0 <= fraction <= 1.0:
            self.current = self.begin + fraction * (self.end - self.begin)
            self._post_value(self.current)

    def post_end(self) -> None:
        self.current = self.end
        self._post_value(self.end, force=True)
