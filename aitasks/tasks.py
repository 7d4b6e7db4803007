from celery import shared_task

from .commands import ParsedCommand
from .orchestrator import TaskOrchestrator


@shared_task(bind=True)
def process_ai_task(self, task_id: str, command: str, options: dict | None = None):
    # The orchestrator records failures on the task itself, so nothing is raised
    # back to Celery and the message is never redelivered.
    parsed = ParsedCommand.from_payload(command, options)
    TaskOrchestrator.from_settings().run(task_id, parsed)
