"""
Transcode executor for the fixed rendition set.

Operations run concurrently as ffmpeg processes, CPU-heavy and independent of
each other. The executor always waits for every operation; one failure does
not cancel its siblings, it is just reported in that rendition's result.
"""
import logging
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path

from django.conf import settings

from .errors import TranscodeError

logger = logging.getLogger(__name__)

# Lines of ffmpeg stderr kept as the diagnostic for a failed run
STDERR_TAIL_LINES = 20


@dataclass(frozen=True)
class TranscodeResult:
    rendition: object
    ok: bool
    duration: float
    error: str | None = None

    @property
    def kind(self) -> str:
        return self.rendition.kind


def _tail(text: str | bytes | None, lines: int = STDERR_TAIL_LINES) -> str:
    if not text:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="ignore")
    return "\n".join(text.strip().splitlines()[-lines:])


def run_ffmpeg(args, timeout: float | None = None) -> None:
    """
    Run one ffmpeg invocation to completion.

    Raises:
        TranscodeError: binary missing, timed out, or non-zero exit.
    """
    cmd = [settings.FFMPEG_BINARY, "-hide_banner", "-nostdin", *args]
    logger.debug("Running %s", " ".join(cmd))
    try:
        subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=timeout)
    except FileNotFoundError as e:
        raise TranscodeError(f"Transcoder binary not found: {settings.FFMPEG_BINARY}") from e
    except subprocess.TimeoutExpired as e:
        raise TranscodeError(f"ffmpeg timed out after {timeout}s: {_tail(e.stderr)}") from e
    except subprocess.CalledProcessError as e:
        raise TranscodeError(f"ffmpeg exited with {e.returncode}: {_tail(e.stderr)}") from e


class TranscodeExecutor:
    """
    Fan out renditions over a bounded thread pool and join them all.

    ``runner`` is called as ``runner(args, timeout=...)`` and must raise on
    failure; tests substitute a fake that writes the output file itself.
    """

    def __init__(self, runner=run_ffmpeg, max_workers: int | None = None, timeout: float | None = None):
        self.runner = runner
        self.max_workers = max_workers or settings.TRANSCODE_MAX_WORKERS
        self.timeout = timeout if timeout is not None else settings.TRANSCODE_TIMEOUT_SECONDS

    def _attempt(self, args, output: Path) -> None:
        self.runner(args, timeout=self.timeout)
        if not output.is_file() or output.stat().st_size == 0:
            raise TranscodeError(f"ffmpeg produced no output at {output}")

    def _run_one(self, rendition) -> TranscodeResult:
        started = time.monotonic()
        output = Path(rendition.local_path)
        try:
            try:
                self._attempt(rendition.args, output)
            except Exception as e:
                if not rendition.fallback_args:
                    raise
                logger.info("Rendition %s failed (%s); retrying with fallback arguments", rendition.kind, e)
                self._attempt(rendition.fallback_args, output)
        except Exception as e:
            duration = time.monotonic() - started
            logger.warning("Rendition %s failed after %.2fs: %s", rendition.kind, duration, e)
            return TranscodeResult(rendition=rendition, ok=False, duration=duration, error=str(e))

        duration = time.monotonic() - started
        logger.info("Rendition %s finished in %.2fs", rendition.kind, duration)
        return TranscodeResult(rendition=rendition, ok=True, duration=duration)

    def execute(self, renditions) -> list[TranscodeResult]:
        """Run every rendition and return results in the input order."""
        renditions = list(renditions)
        if not renditions:
            return []
        workers = max(1, min(len(renditions), self.max_workers))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transcode") as pool:
            futures = [pool.submit(self._run_one, r) for r in renditions]
            wait(futures)
        return [f.result() for f in futures]


def ensure_success(results, video_id: str | None = None) -> None:
    """Raise TranscodeError naming every failed rendition, if any failed."""
    failures = {r.kind: r.error for r in results if not r.ok}
    if failures:
        raise TranscodeError(
            f"Renditions failed: {', '.join(sorted(failures))}",
            video_id=video_id,
            failures=failures,
        )
