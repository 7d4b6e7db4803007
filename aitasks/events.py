import logging

from django.dispatch import Signal

logger = logging.getLogger(__name__)

# kwargs: task_id, progress, message
task_progress = Signal()
# kwargs: task_id, status, result_path
task_completed = Signal()
# kwargs: task_id, error
task_failed = Signal()


def _send(signal: Signal, sender, **kwargs) -> None:
    """Deliver to every receiver; a failing receiver is logged, never raised."""
    for receiver, response in signal.send_robust(sender=sender, **kwargs):
        if isinstance(response, Exception):
            logger.warning(
                "Event receiver %r failed for task %s: %s", receiver, kwargs.get("task_id"), response
            )


def emit_progress(sender, task_id: str, progress: float, message: str = "") -> None:
    _send(task_progress, sender, task_id=task_id, progress=progress, message=message)


def emit_complete(sender, task_id: str, result_path: str) -> None:
    _send(task_completed, sender, task_id=task_id, status="completed", result_path=result_path)


def emit_failed(sender, task_id: str, error: str) -> None:
    _send(task_failed, sender, task_id=task_id, error=error)
