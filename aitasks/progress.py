import logging
import threading

from . import events

logger = logging.getLogger(__name__)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class ProgressReporter:
    """
    Fire-and-forget progress events. Per task, only strictly increasing values
    are emitted; anything at or below the last emitted value is dropped.
    """

    def __init__(self):
        self._last: dict[str, float] = {}
        self._lock = threading.Lock()

    def emit(self, task_id, progress: float, message: str = "") -> bool:
        task_id = str(task_id)
        progress = _clamp(progress)
        with self._lock:
            last = self._last.get(task_id)
            if last is not None and progress <= last:
                logger.debug("Task %s: dropping non-increasing progress %.3f (last %.3f)", task_id, progress, last)
                return False
            self._last[task_id] = progress

        logger.info("Task %s progress %.2f: %s", task_id, progress, message)
        try:
            events.emit_progress(self.__class__, task_id, progress, message)
        except Exception:
            logger.exception("Task %s: progress event delivery failed", task_id)
        return True

    def last(self, task_id) -> float | None:
        with self._lock:
            return self._last.get(str(task_id))

    def forget(self, task_id) -> None:
        with self._lock:
            self._last.pop(str(task_id), None)

    def bind(self, task_id, start: float = 0.0, end: float = 1.0) -> "StageProgress":
        return StageProgress(self, str(task_id), start, end)


class StageProgress:
    """A reporter bound to one task, mapping local 0..1 checkpoints into [start, end]."""

    def __init__(self, reporter: ProgressReporter, task_id: str, start: float, end: float):
        self.reporter = reporter
        self.task_id = task_id
        self.start = start
        self.end = end

    def __call__(self, progress: float, message: str = "") -> bool:
        scaled = self.start + (self.end - self.start) * _clamp(progress)
        return self.reporter.emit(self.task_id, round(scaled, 6), message)

    def sub(self, start: float, end: float) -> "StageProgress":
        span = self.end - self.start
        return StageProgress(self.reporter, self.task_id, self.start + span * start, self.start + span * end)
