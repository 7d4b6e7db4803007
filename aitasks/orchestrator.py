import logging
from pathlib import Path

from django.conf import settings

from . import events
from .commands import ParsedCommand
from .errors import NoInputFilesError, UnsupportedCommandError
from .inference import InferenceClient
from .pipelines import PIPELINES, PipelineContext
from .progress import ProgressReporter
from .scratch import ScratchStore
from .store import TaskStore
from .transcode import TranscodeStage

logger = logging.getLogger(__name__)


class TaskOrchestrator:
    """
    Runs one task from `processing` to a terminal state.

    run() never raises: every failure ends as a persisted `failed` status plus
    a failure event. Exactly one completion or failure event is emitted per
    run that managed to claim its task.
    """

    def __init__(self, *, store: TaskStore, scratch: ScratchStore, transcoder: TranscodeStage,
                 inference: InferenceClient, reporter: ProgressReporter | None = None, pipelines=None):
        self.store = store
        self.scratch = scratch
        self.transcoder = transcoder
        self.inference = inference
        self.reporter = reporter or ProgressReporter()
        self.pipelines = PIPELINES if pipelines is None else pipelines

    @classmethod
    def from_settings(cls) -> "TaskOrchestrator":
        return cls(
            store=TaskStore(),
            scratch=ScratchStore(Path(settings.MEDIA_OUTPUT_DIR)),
            transcoder=TranscodeStage(settings.FFMPEG_BINARY),
            inference=InferenceClient.from_settings(),
        )

    def run(self, task_id, parsed: ParsedCommand) -> None:
        task_id = str(task_id)
        try:
            claimed = self.store.claim(task_id)
        except Exception:
            logger.exception("AI task %s could not be claimed", task_id)
            return
        if not claimed:
            logger.warning("AI task %s not started: missing or already processing", task_id)
            return

        try:
            result_path = self._execute(task_id, parsed)
        except Exception as e:
            logger.exception("Error executing AI task %s", task_id)
            self._fail(task_id, str(e) or e.__class__.__name__)
        else:
            self._complete(task_id, result_path)
        finally:
            self.reporter.forget(task_id)

    def _execute(self, task_id: str, parsed: ParsedCommand) -> str:
        files = self.store.input_files(task_id)
        if not files:
            raise NoInputFilesError(task_id)
        if len(files) > 1:
            logger.info("AI task %s has %d files; only %s is processed", task_id, len(files), files[0].file_name)

        scratch = self.scratch.for_task(task_id)

        pipeline = self.pipelines.get(parsed.command)
        if pipeline is None:
            raise UnsupportedCommandError(parsed.command)

        ctx = PipelineContext(
            task_id=task_id,
            input_file=files[0],
            scratch=scratch,
            progress=self.reporter.bind(task_id),
            transcoder=self.transcoder,
            inference=self.inference,
        )
        return str(pipeline(ctx, parsed))

    def _complete(self, task_id: str, result_path: str) -> None:
        try:
            self.store.mark_completed(task_id, result_path)
        except Exception as e:
            logger.exception("AI task %s finished but its result could not be saved", task_id)
            self._fail(task_id, f"Failed to record result: {e}")
            return
        self.reporter.emit(task_id, 1.0, "Task completed")
        events.emit_complete(self.__class__, task_id, result_path)
        logger.info("AI task %s completed successfully: %s", task_id, result_path)

    def _fail(self, task_id: str, error: str) -> None:
        try:
            self.store.mark_failed(task_id, error)
        except Exception:
            logger.exception("AI task %s: could not persist failed status", task_id)
        events.emit_failed(self.__class__, task_id, error)
