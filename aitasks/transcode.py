import logging
import subprocess
from pathlib import Path

from .errors import PreparationError

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


def _stderr_tail(e: subprocess.CalledProcessError) -> str:
    err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
    return err.strip()[-STDERR_TAIL_CHARS:]


OPTION_SPECIAL_CHARS = "\\:'"
GRAPH_SPECIAL_CHARS = "\\'[],;"


def _escape(value: str, special: str) -> str:
    # backslash comes first in both sets so added escapes are not doubled
    for ch in special:
        value = value.replace(ch, "\\" + ch)
    return value


def _filter_path(path: Path) -> str:
    """
    Escape a path for use as an ffmpeg filter option inside -vf.

    ffmpeg unescapes twice: once when splitting the filtergraph into filters,
    then once more when parsing each filter's options.
    """
    return _escape(_escape(str(path), OPTION_SPECIAL_CHARS), GRAPH_SPECIAL_CHARS)


class TranscodeStage:
    """
    Local ffmpeg invocations. Each call blocks until ffmpeg exits; a non-zero
    exit or a process that cannot start raises PreparationError.
    """

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary

    def run(self, args: list[str], output: Path, *, description: str) -> Path:
        cmd = [self.binary, "-y", *args, str(output)]
        logger.info("ffmpeg: %s", " ".join(cmd))
        try:
            subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except subprocess.CalledProcessError as e:
            err = _stderr_tail(e)
            logger.error("%s (exit %s): %s", description, e.returncode, err)
            raise PreparationError(f"{description}: {err}") from e
        except OSError as e:
            logger.error("%s: could not run %s: %s", description, self.binary, e)
            raise PreparationError(f"{description}: {e}") from e
        return Path(output)

    def extract_audio(self, video: Path, output: Path) -> Path:
        """Mono 16 kHz signed 16-bit PCM, the input format speech models expect."""
        return self.run(
            [
                "-i", str(video),
                "-vn",
                "-acodec", "pcm_s16le",
                "-ar", "16000",
                "-ac", "1",
            ],
            output,
            description="Failed to extract audio from video",
        )

    def normalize_video(self, video: Path, output: Path, *, description: str) -> Path:
        return self.run(
            [
                "-i", str(video),
                "-c:v", "libx264",
                "-preset", "medium",
                "-crf", "23",
                "-c:a", "aac",
                "-b:a", "128k",
            ],
            output,
            description=description,
        )

    def convert_subtitles(self, subtitles: Path, output: Path) -> Path:
        # ffmpeg picks the target subtitle format from the output extension (.ass)
        return self.run(
            ["-i", str(subtitles)],
            output,
            description="Failed to convert subtitles to ASS",
        )

    def burn_subtitles(self, video: Path, subtitles: Path, output: Path) -> Path:
        return self.run(
            [
                "-i", str(video),
                "-vf", f"ass={_filter_path(subtitles)}",
                "-c:v", "libx264",
                "-crf", "23",
                "-preset", "fast",
                "-c:a", "copy",
            ],
            output,
            description="Failed to burn subtitles into video",
        )
