from django.dispatch import receiver

from .events import task_progress
from .store import TaskStore


@receiver(task_progress, dispatch_uid="aitasks.record_progress")
def record_progress(sender, task_id, progress, **kwargs):
    TaskStore().record_progress(task_id, progress)
