"""
Command pipelines.

Each pipeline takes a PipelineContext plus the ParsedCommand, runs its stages
strictly in order and returns the path of the final artifact inside the
task's scratch directory. Progress checkpoints are local to the pipeline
(0..1); the context's StageProgress maps them into the task-wide range, which
is how the subtitle pipeline nests the transcription pipeline.
"""
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Mapping

from .commands import FileRef, ParsedCommand
from .errors import InferenceError, PipelineError, SubtitleApplicationError
from .inference import InferenceClient
from .models import Command
from .progress import StageProgress
from .scratch import ScratchDirectory
from .transcode import TranscodeStage

logger = logging.getLogger(__name__)

# Share of the task-wide progress range the nested transcription gets.
SUBTITLE_TRANSCRIPTION_SHARE = 0.7


@dataclass(frozen=True)
class PipelineContext:
    task_id: str
    input_file: FileRef
    scratch: ScratchDirectory
    progress: StageProgress
    transcoder: TranscodeStage
    inference: InferenceClient

    @property
    def stem(self) -> str:
        return Path(self.input_file.file_name).stem

    @property
    def input_path(self) -> Path:
        return Path(self.input_file.file_path)


def _infer(ctx: PipelineContext, operation: str, source: Path, options: Mapping[str, Any],
           expected_output: Path) -> Path:
    result = ctx.inference.request(operation, source, options, expected_output=expected_output)
    if not ctx.scratch.contains(result.output_path):
        raise InferenceError(
            f"{operation} returned an artifact outside the task directory: {result.output_path}"
        )
    return result.output_path


# ---------------------------------------------------------------------------
# transcribe
# ---------------------------------------------------------------------------

def transcribe(ctx: PipelineContext, parsed: ParsedCommand) -> Path:
    language = parsed.option("language", "auto")
    fmt = parsed.option("format", "txt")

    logger.info("Task %s: preparing transcription of %s (language=%s)", ctx.task_id, ctx.input_file.file_name, language)

    audio_path = ctx.scratch.artifact(f"{ctx.stem}-audio.wav")
    ctx.progress(0.1, "Extracting audio from video...")
    ctx.transcoder.extract_audio(ctx.input_path, audio_path)
    logger.info("Task %s: extracted audio to %s", ctx.task_id, audio_path)

    result_path = ctx.scratch.artifact(f"{ctx.stem}-transcription.{fmt}")

    ctx.progress(0.2, "Starting transcription...")
    try:
        result_path = _infer(ctx, "transcribe", audio_path, {"language": language, "format": fmt}, result_path)
    except InferenceError as e:
        logger.error("Task %s: transcription failed: %s", ctx.task_id, e)
        # Keep the audio so an operator can retry or inspect it by hand.
        ctx.scratch.write_text(
            result_path,
            f"Error transcribing {ctx.input_file.file_name}: {e}\n\nAudio file is available at {audio_path}",
        )
        raise InferenceError(f"Transcription service error: {e}") from e

    ctx.progress(0.9, "Saving transcription...")
    logger.info("Task %s: transcription saved at %s", ctx.task_id, result_path)
    ctx.scratch.discard(audio_path)
    return result_path


# ---------------------------------------------------------------------------
# slowmotion / fpsboost
# ---------------------------------------------------------------------------

def _normalize_infer_cleanup(ctx: PipelineContext, *, operation: str, label: str,
                             options: Mapping[str, Any], output_suffix: str) -> Path:
    normalized = ctx.scratch.artifact(f"{ctx.stem}.mp4")
    ctx.progress(0.1, "Preparing video for processing...")
    ctx.transcoder.normalize_video(
        ctx.input_path, normalized, description=f"Failed to prepare video for {label} processing"
    )

    expected = ctx.scratch.artifact(f"{ctx.stem}-{output_suffix}.mp4")
    ctx.progress(0.2, f"Starting {label} processing...")
    try:
        result_path = _infer(ctx, operation, normalized, options, expected)
    except InferenceError as e:
        logger.error("Task %s: %s failed: %s", ctx.task_id, label, e)
        raise InferenceError(f"{label.capitalize()} service error: {e}") from e

    ctx.progress(0.9, "Saving processed video...")
    logger.info("Task %s: %s video saved at %s", ctx.task_id, label, result_path)
    ctx.scratch.discard(normalized)
    return result_path


def slow_motion(ctx: PipelineContext, parsed: ParsedCommand) -> Path:
    speed = float(parsed.option("speed", 0.5))
    logger.info("Task %s: slow motion of %s with speed %s", ctx.task_id, ctx.input_file.file_name, speed)
    return _normalize_infer_cleanup(
        ctx, operation="slowmo", label="slow motion", options={"speed": speed}, output_suffix="slowmo",
    )


def fps_boost(ctx: PipelineContext, parsed: ParsedCommand) -> Path:
    factor = parsed.option("factor", 2)
    logger.info("Task %s: frame rate boost of %s by %s", ctx.task_id, ctx.input_file.file_name, factor)
    return _normalize_infer_cleanup(
        ctx, operation="fpsboost", label="frame rate boost", options={"factor": factor}, output_suffix="fpsboost",
    )


# ---------------------------------------------------------------------------
# subtitle
# ---------------------------------------------------------------------------

def subtitle(ctx: PipelineContext, parsed: ParsedCommand) -> Path:
    fmt = parsed.option("format", "mp4")

    # Errors raised in here keep their own type (PreparationError / InferenceError).
    transcription_ctx = replace(ctx, progress=ctx.progress.sub(0.0, SUBTITLE_TRANSCRIPTION_SHARE))
    srt_path = transcribe(transcription_ctx, parsed.with_options(format="srt"))

    result_path = ctx.scratch.artifact(f"{ctx.stem}-subtitled.{fmt}")
    ctx.progress(0.8, "Applying subtitles to video...")
    try:
        ass_path = srt_path.with_suffix(".ass")
        ctx.transcoder.convert_subtitles(srt_path, ass_path)
        ctx.transcoder.burn_subtitles(ctx.input_path, ass_path, result_path)
    except PipelineError as e:
        logger.error("Task %s: failed to apply subtitles: %s", ctx.task_id, e)
        raise SubtitleApplicationError(f"Failed to apply subtitles to video: {e}") from e
    logger.info("Task %s: subtitles applied to %s", ctx.task_id, result_path)

    ctx.scratch.discard(srt_path)
    ctx.scratch.discard(ass_path)

    ctx.progress(1.0, "Subtitles applied successfully")
    return result_path


PIPELINES: dict[str, Callable[[PipelineContext, ParsedCommand], Path]] = {
    Command.TRANSCRIBE: transcribe,
    Command.SLOWMOTION: slow_motion,
    Command.FPSBOOST: fps_boost,
    Command.SUBTITLE: subtitle,
}
