from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from aitasks import events
from aitasks.commands import FileRef, ParsedCommand
from aitasks.inference import InferenceClient
from aitasks.models import Task

from .fakes import BACKEND_URL, InMemoryStore

pytestmark = pytest.mark.django_db


def _run(orchestrator, task, command=None, options=None):
    orchestrator.run(task.id, ParsedCommand.from_payload(command or task.command, options or task.options))
    task.refresh_from_db()
    return task


def _inside(path: str, root: Path) -> bool:
    try:
        Path(path).resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


# ---------------------------------------------------------------------------
# success paths
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "command,options,suffix",
    [
        ("transcribe", {}, "clip-transcription.txt"),
        ("slowmotion", {}, "clip-slowmo.mp4"),
        ("fpsboost", {}, "clip-fpsboost.mp4"),
        ("subtitle", {}, "clip-subtitled.mp4"),
    ],
)
def test_every_command_completes_inside_scratch_dir(make_orchestrator, make_task, recorder, output_root,
                                                     command, options, suffix):
    task = _run(make_orchestrator(), make_task(command, options))

    assert task.status == Task.Status.COMPLETED
    assert task.error is None
    assert task.result_path.endswith(suffix)
    assert _inside(task.result_path, output_root / str(task.id))
    assert Path(task.result_path).exists()

    values = recorder.progress_values(task.id)
    assert values[-1] == 1.0
    assert values == sorted(set(values))
    assert recorder.completed == [(str(task.id), "completed", task.result_path)]
    assert recorder.failed == []
    assert task.progress == 1.0


def test_transcribe_example_task_t1(make_orchestrator, recorder, backend, tmp_path, output_root):
    source = tmp_path / "clip.mov"
    source.write_bytes(b"source media")
    store = InMemoryStore()
    store.add("t1", [FileRef(id="f1", file_path=str(source), file_name="clip.mov", mime_type="video/quicktime")])

    make_orchestrator(store=store).run("t1", ParsedCommand("transcribe", {"language": "en", "format": "srt"}))

    assert recorder.progress_values("t1") == [0.1, 0.2, 0.9, 1.0]
    assert store.tasks["t1"]["status"] == "completed"
    assert store.tasks["t1"]["result_path"].endswith("clip-transcription.srt")
    assert backend.requests[0].url.path.endswith("/language-en,format-srt")
    # the intermediate audio is gone, the result stays
    assert not (output_root / "t1" / "clip-audio.wav").exists()
    assert (output_root / "t1" / "clip-transcription.srt").exists()


def test_result_that_cannot_be_saved_fails_without_final_progress(make_orchestrator, recorder, tmp_path):
    class BrokenStore(InMemoryStore):
        def mark_completed(self, task_id, result_path):
            raise RuntimeError("database is locked")

    source = tmp_path / "clip.mov"
    source.write_bytes(b"source media")
    store = BrokenStore()
    store.add("t2", [FileRef(id="f1", file_path=str(source), file_name="clip.mov")])

    make_orchestrator(store=store).run("t2", ParsedCommand("fpsboost"))

    assert store.tasks["t2"]["status"] == "failed"
    assert store.tasks["t2"]["error"] == "Failed to record result: database is locked"
    assert recorder.progress_values("t2") == [0.1, 0.2, 0.9]
    assert recorder.completed == []
    assert recorder.failed == [("t2", "Failed to record result: database is locked")]


def test_slowmotion_sends_speed_and_removes_normalized_copy(make_orchestrator, make_task, backend, ffmpeg, output_root):
    task = _run(make_orchestrator(), make_task("slowmotion", {"speed": 0.25}))

    assert task.status == Task.Status.COMPLETED
    assert backend.operations() == ["slowmo"]
    assert backend.requests[0].url.path.endswith("/speed-0.25")
    assert ffmpeg.outputs() == ["clip.mp4"]
    assert not (output_root / str(task.id) / "clip.mp4").exists()


def test_fpsboost_reads_factor_option(make_orchestrator, make_task, backend):
    task = _run(make_orchestrator(), make_task("fpsboost", {"factor": 4}))

    assert task.status == Task.Status.COMPLETED
    assert backend.requests[0].url.path.endswith("/factor-4")


def test_subtitle_forces_srt_and_keeps_progress_increasing(make_orchestrator, make_task, backend, ffmpeg,
                                                           recorder, output_root):
    task = _run(make_orchestrator(), make_task("subtitle", {"language": "de", "format": "mkv"}))

    assert task.status == Task.Status.COMPLETED
    assert task.result_path.endswith("clip-subtitled.mkv")
    assert backend.requests[0].url.path.endswith("/language-de,format-srt")
    assert ffmpeg.outputs() == ["clip-audio.wav", "clip-transcription.ass", "clip-subtitled.mkv"]
    assert recorder.progress_values(task.id) == [0.07, 0.14, 0.63, 0.8, 1.0]

    scratch = output_root / str(task.id)
    assert sorted(p.name for p in scratch.iterdir()) == ["clip-subtitled.mkv"]


def test_unconfirmed_backend_result_falls_back_to_expected_name(make_orchestrator, make_task, backend):
    backend.confirm = False
    task = _run(make_orchestrator(), make_task("fpsboost"))

    assert task.status == Task.Status.COMPLETED
    assert task.result_path.endswith("clip-fpsboost.mp4")


def test_only_first_file_is_processed(make_orchestrator, make_task, upload, ffmpeg):
    first, second = upload("first.mov"), upload("second.mov")
    task = _run(make_orchestrator(), make_task("slowmotion", files=[first, second]))

    assert task.result_path.endswith("first-slowmo.mp4")
    assert ffmpeg.calls[0][ffmpeg.calls[0].index("-i") + 1] == first.file_path


# ---------------------------------------------------------------------------
# failure paths
# ---------------------------------------------------------------------------

def test_task_without_files_fails_before_touching_filesystem(make_orchestrator, make_task, recorder, output_root):
    task = _run(make_orchestrator(), make_task("transcribe", files=[]))

    assert task.status == Task.Status.FAILED
    assert "No files found" in task.error
    assert task.result_path is None
    assert not (output_root / str(task.id)).exists()
    assert recorder.failed == [(str(task.id), task.error)]
    assert recorder.completed == []


def test_unsupported_command_fails(make_orchestrator, make_task, recorder, ffmpeg, backend, output_root):
    task = _run(make_orchestrator(), make_task("transcribe"), command="denoise")

    assert task.status == Task.Status.FAILED
    assert task.error == "Unsupported AI command: denoise"
    assert ffmpeg.calls == []
    assert backend.requests == []
    assert list((output_root / str(task.id)).iterdir()) == []


def test_transcription_inference_failure_leaves_placeholder(make_orchestrator, make_task, backend, recorder, output_root):
    backend.status_code = 500
    task = _run(make_orchestrator(), make_task("transcribe", {"format": "srt"}))

    assert task.status == Task.Status.FAILED
    assert task.error.startswith("Transcription service error:")
    assert "HTTP 500" in task.error
    assert task.result_path is None

    scratch = output_root / str(task.id)
    placeholder = scratch / "clip-transcription.srt"
    audio = scratch / "clip-audio.wav"
    assert audio.exists()
    text = placeholder.read_text(encoding="utf-8")
    assert text.startswith("Error transcribing clip.mov:")
    assert str(audio) in text

    # no checkpoint after the failing stage
    assert recorder.progress_values(task.id) == [0.1, 0.2]
    assert recorder.completed == []


def test_unusable_artifact_location_still_leaves_placeholder(make_orchestrator, make_task, output_root):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"path": 123}))
    orchestrator = make_orchestrator()
    orchestrator.inference = InferenceClient(BACKEND_URL, transport=transport)

    task = _run(orchestrator, make_task("transcribe", {"format": "srt"}))

    assert task.status == Task.Status.FAILED
    assert task.error.startswith("Transcription service error:")
    assert "unusable artifact location" in task.error
    placeholder = output_root / str(task.id) / "clip-transcription.srt"
    assert placeholder.read_text(encoding="utf-8").startswith("Error transcribing clip.mov:")


def test_audio_extraction_failure_is_a_preparation_failure(make_orchestrator, make_task, ffmpeg, backend):
    ffmpeg.fail_on.add("clip-audio.wav")
    task = _run(make_orchestrator(), make_task("transcribe"))

    assert task.status == Task.Status.FAILED
    assert task.error.startswith("Failed to extract audio from video")
    assert backend.requests == []


def test_slowmotion_preparation_and_inference_failures_are_distinct(make_orchestrator, make_task, ffmpeg, backend):
    ffmpeg.fail_on.add("clip.mp4")
    prep = _run(make_orchestrator(), make_task("slowmotion"))

    ffmpeg.fail_on.clear()
    backend.status_code = 502
    infer = _run(make_orchestrator(), make_task("slowmotion"))

    assert prep.status == infer.status == Task.Status.FAILED
    assert prep.error.startswith("Failed to prepare video for slow motion processing")
    assert infer.error.startswith("Slow motion service error:")
    assert prep.result_path is None and infer.result_path is None


def test_subtitle_burn_in_failure_differs_from_transcription_failure(make_orchestrator, make_task, ffmpeg, backend):
    ffmpeg.fail_on.add("clip-subtitled.mp4")
    burn = _run(make_orchestrator(), make_task("subtitle"))

    ffmpeg.fail_on.clear()
    backend.status_code = 500
    transcription = _run(make_orchestrator(), make_task("subtitle"))

    assert burn.status == transcription.status == Task.Status.FAILED
    assert burn.error.startswith("Failed to apply subtitles to video")
    assert transcription.error.startswith("Transcription service error:")
    assert burn.result_path is None


def test_backend_reporting_path_outside_scratch_fails(make_orchestrator, make_task, tmp_path):
    elsewhere = tmp_path / "elsewhere.mp4"
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"output_path": str(elsewhere)}))
    orchestrator = make_orchestrator()
    orchestrator.inference = InferenceClient(BACKEND_URL, transport=transport)

    task = _run(orchestrator, make_task("fpsboost"))

    assert task.status == Task.Status.FAILED
    assert "outside the task directory" in task.error


def test_cleanup_failure_does_not_change_outcome(make_orchestrator, make_task, backend, recorder, caplog):
    backend.delete_input = True
    with caplog.at_level("WARNING", logger="aitasks.scratch"):
        transcribed = _run(make_orchestrator(), make_task("transcribe"))
        boosted = _run(make_orchestrator(), make_task("fpsboost"))

    assert transcribed.status == Task.Status.COMPLETED
    assert boosted.status == Task.Status.COMPLETED
    assert any("Failed to clean up" in r.getMessage() for r in caplog.records)


def test_failing_event_receiver_does_not_abort_run(make_orchestrator, make_task):
    def broken(**kwargs):
        raise RuntimeError("socket closed")

    events.task_progress.connect(broken, weak=False, dispatch_uid="broken")
    try:
        task = _run(make_orchestrator(), make_task("transcribe"))
    finally:
        events.task_progress.disconnect(dispatch_uid="broken")

    assert task.status == Task.Status.COMPLETED


# ---------------------------------------------------------------------------
# claiming
# ---------------------------------------------------------------------------

def test_task_already_processing_is_not_touched(make_orchestrator, make_task, recorder, ffmpeg):
    task = make_task("transcribe")
    Task.objects.filter(pk=task.pk).update(status=Task.Status.PROCESSING)

    task = _run(make_orchestrator(), task)

    assert task.status == Task.Status.PROCESSING
    assert ffmpeg.calls == []
    assert recorder.completed == [] and recorder.failed == []


def test_unknown_task_is_ignored(make_orchestrator, recorder, ffmpeg):
    make_orchestrator().run("5f0c6f0e-0000-4000-8000-000000000000", ParsedCommand("transcribe"))
    make_orchestrator().run("not-a-uuid", ParsedCommand("transcribe"))

    assert ffmpeg.calls == []
    assert recorder.completed == [] and recorder.failed == []


def test_rerun_clears_previous_failure(make_orchestrator, make_task, backend):
    backend.status_code = 500
    task = _run(make_orchestrator(), make_task("fpsboost"))
    assert task.status == Task.Status.FAILED

    backend.status_code = 200
    task = _run(make_orchestrator(), task)
    assert task.status == Task.Status.COMPLETED
    assert task.error is None
