"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from aitasks import events
from aitasks.inference import InferenceClient
from aitasks.models import MediaFile, Task, TaskFile
from aitasks.orchestrator import TaskOrchestrator
from aitasks.scratch import ScratchStore
from aitasks.store import TaskStore
from aitasks.transcode import TranscodeStage

from .fakes import BACKEND_URL, EventRecorder, FakeBackend, FakeFfmpeg


@pytest.fixture()
def ffmpeg(monkeypatch) -> FakeFfmpeg:
    fake = FakeFfmpeg()
    monkeypatch.setattr("aitasks.transcode.subprocess.run", fake)
    return fake


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def inference_client(backend) -> InferenceClient:
    return InferenceClient(BACKEND_URL, timeout=5, transport=httpx.MockTransport(backend.handler))


@pytest.fixture()
def output_root(tmp_path) -> Path:
    return tmp_path / "output"


@pytest.fixture()
def recorder():
    rec = EventRecorder()
    events.task_progress.connect(rec.on_progress, weak=False, dispatch_uid="test_progress")
    events.task_completed.connect(rec.on_completed, weak=False, dispatch_uid="test_completed")
    events.task_failed.connect(rec.on_failed, weak=False, dispatch_uid="test_failed")
    yield rec
    events.task_progress.disconnect(dispatch_uid="test_progress")
    events.task_completed.disconnect(dispatch_uid="test_completed")
    events.task_failed.disconnect(dispatch_uid="test_failed")


@pytest.fixture()
def make_orchestrator(output_root, ffmpeg, inference_client):
    def _make(store=None, **kwargs) -> TaskOrchestrator:
        return TaskOrchestrator(
            store=store or TaskStore(),
            scratch=ScratchStore(output_root),
            transcoder=TranscodeStage("ffmpeg"),
            inference=inference_client,
            **kwargs,
        )

    return _make


@pytest.fixture()
def upload(tmp_path):
    """Create a source media file on disk and register it."""
    uploads = tmp_path / "uploads"
    uploads.mkdir(exist_ok=True)

    def _upload(name: str = "clip.mov", mime_type: str = "video/quicktime") -> MediaFile:
        path = uploads / name
        path.write_bytes(b"source media")
        return MediaFile.objects.create(file_path=str(path), file_name=name, mime_type=mime_type)

    return _upload


@pytest.fixture()
def make_task(upload):
    def _make(command: str, options: dict | None = None, files: list[MediaFile] | None = None) -> Task:
        task = Task.objects.create(command=command, options=options or {})
        for pos, media in enumerate(files if files is not None else [upload()]):
            TaskFile.objects.create(task=task, file=media, position=pos)
        return task

    return _make
