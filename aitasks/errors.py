"""
Failure conditions raised while running a task pipeline.

Everything except CleanupError aborts the run; the orchestrator turns it into
a persisted `failed` status and a failure event.
"""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class NoInputFilesError(PipelineError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"No files found for task {task_id}")


class UnsupportedCommandError(PipelineError):
    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unsupported AI command: {command}")


class PreparationError(PipelineError):
    """A local ffmpeg stage failed (non-zero exit or the process could not start)."""


class InferenceError(PipelineError):
    """The inference backend call failed or returned an unusable result."""


class SubtitleApplicationError(PipelineError):
    """Converting or burning the generated subtitles into the video failed."""


class CleanupError(PipelineError):
    """An intermediate artifact could not be removed. Never fatal."""
