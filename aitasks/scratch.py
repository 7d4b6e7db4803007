import logging
from pathlib import Path

from .errors import CleanupError

logger = logging.getLogger(__name__)


class ScratchDirectory:
    """
    Per-task working area. Intermediates and the final artifact all live here;
    cleanup only ever removes named intermediates, never the directory itself.
    """

    def __init__(self, task_id: str, path: Path):
        self.task_id = task_id
        self.path = path

    def artifact(self, name: str) -> Path:
        candidate = self.path / name
        if not self.contains(candidate) or candidate.resolve() == self.path.resolve():
            raise ValueError(f"Artifact name escapes scratch directory: {name!r}")
        return candidate

    def contains(self, candidate) -> bool:
        try:
            Path(candidate).resolve().relative_to(self.path.resolve())
        except ValueError:
            return False
        return True

    def write_text(self, path: Path, text: str) -> Path:
        if not self.contains(path):
            raise ValueError(f"Refusing to write outside scratch directory: {path}")
        path.write_text(text, encoding="utf-8")
        return path

    def remove(self, path: Path) -> None:
        if not self.contains(path):
            raise CleanupError(f"Refusing to remove {path}: not inside {self.path}")
        try:
            Path(path).unlink()
        except OSError as e:
            raise CleanupError(f"Failed to clean up {path}: {e}") from e

    def discard(self, path: Path) -> bool:
        """Best-effort remove(); failures are logged and reported as False."""
        try:
            self.remove(path)
        except CleanupError as e:
            logger.warning("Task %s: %s", self.task_id, e)
            return False
        logger.info("Task %s: cleaned up intermediate %s", self.task_id, path)
        return True


class ScratchStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    def for_task(self, task_id) -> ScratchDirectory:
        """Create (or reuse) the task's directory; safe to call repeatedly."""
        name = str(task_id)
        if not name or name in {".", ".."} or "/" in name or "\\" in name:
            raise ValueError(f"Invalid task id for scratch directory: {name!r}")
        path = self.root / name
        path.mkdir(parents=True, exist_ok=True)
        return ScratchDirectory(name, path)
