from django.db import transaction
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .models import Task, TaskFile
from .serializers import TaskCreateSerializer, TaskSerializer
from .tasks import process_ai_task


class CreateTaskView(views.APIView):
    """
    Creates a Task from files that are already registered, links them in the
    given order and enqueues the orchestrator run.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = TaskCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        with transaction.atomic():
            task = Task.objects.create(command=data["command"], options=data["options"])
            TaskFile.objects.bulk_create(
                TaskFile(task=task, file_id=file_id, position=pos)
                for pos, file_id in enumerate(data["file_ids"])
            )

        # Enqueue only once the rows are visible to the worker.
        transaction.on_commit(
            lambda: process_ai_task.delay(str(task.id), task.command, task.options)
        )
        return Response({"task_id": str(task.id)}, status=status.HTTP_202_ACCEPTED)


class TaskDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, task_id):
        try:
            task = Task.objects.prefetch_related("task_files").get(pk=task_id)
        except Task.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)

        return Response(TaskSerializer(task).data)
