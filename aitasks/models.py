import uuid
from django.db import models


class Command(models.TextChoices):
    TRANSCRIBE = "transcribe"
    SLOWMOTION = "slowmotion"
    FPSBOOST = "fpsboost"
    SUBTITLE = "subtitle"


class MediaFile(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    file_path = models.CharField(max_length=1024)   # absolute path on the shared volume
    file_name = models.CharField(max_length=255)    # original client-side name
    mime_type = models.CharField(max_length=127, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.file_name


class Task(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        COMPLETED = "completed"
        FAILED = "failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    command = models.CharField(max_length=32, choices=Command.choices)
    options = models.JSONField(default=dict, blank=True)      # {language, format, speed, factor}
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    progress = models.FloatField(default=0.0)                  # 0..1, last checkpoint reached
    result_path = models.CharField(max_length=1024, null=True, blank=True)
    error = models.TextField(null=True, blank=True)
    files = models.ManyToManyField(MediaFile, through="TaskFile", related_name="tasks")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class TaskFile(models.Model):
    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name="task_files")
    file = models.ForeignKey(MediaFile, on_delete=models.CASCADE, related_name="task_files")
    position = models.PositiveIntegerField(default=0)   # the orchestrator reads position 0 only

    class Meta:
        ordering = ["position", "id"]
        constraints = [
            models.UniqueConstraint(fields=["task", "file"], name="uniq_task_file"),
        ]
