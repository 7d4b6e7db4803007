import logging

from django.core.exceptions import ValidationError
from django.utils import timezone

from .commands import FileRef
from .models import Task, TaskFile

logger = logging.getLogger(__name__)


class TaskStore:
    """Task/file persistence used by the orchestrator. Writes are last-write-wins."""

    def claim(self, task_id) -> bool:
        """
        Atomically move the task to `processing`. Returns False when the task
        does not exist or another run already holds it.
        """
        try:
            updated = (
                Task.objects.filter(pk=task_id)
                .exclude(status=Task.Status.PROCESSING)
                .update(
                    status=Task.Status.PROCESSING,
                    progress=0.0,
                    result_path=None,
                    error=None,
                    updated_at=timezone.now(),
                )
            )
        except ValidationError:
            logger.warning("Cannot claim task %r: not a valid task id", task_id)
            return False
        return updated == 1

    def input_files(self, task_id) -> list[FileRef]:
        links = TaskFile.objects.filter(task_id=task_id).select_related("file").order_by("position", "id")
        return [
            FileRef(
                id=str(link.file.id),
                file_path=link.file.file_path,
                file_name=link.file.file_name,
                mime_type=link.file.mime_type,
            )
            for link in links
        ]

    def mark_completed(self, task_id, result_path: str) -> None:
        Task.objects.filter(pk=task_id).update(
            status=Task.Status.COMPLETED,
            result_path=result_path,
            error=None,
            updated_at=timezone.now(),
        )

    def mark_failed(self, task_id, error: str) -> None:
        # result_path is left untouched; a failed run never records one.
        Task.objects.filter(pk=task_id).update(
            status=Task.Status.FAILED,
            error=error,
            updated_at=timezone.now(),
        )

    def record_progress(self, task_id, progress: float) -> None:
        Task.objects.filter(pk=task_id, status=Task.Status.PROCESSING).update(progress=progress)
