from django.urls import path
from .views import CreateTaskView, TaskDetailView

urlpatterns = [
    path("tasks/", CreateTaskView.as_view(), name="create_task"),
    path("tasks/<uuid:task_id>/", TaskDetailView.as_view(), name="task_detail"),
]
