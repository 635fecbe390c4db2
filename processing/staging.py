import logging
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from django.conf import settings

from .errors import StagingError
from .s3 import S3_ERRORS
from .utils import safe_basename

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobWorkspace:
    video_id: str
    root: Path

    @property
    def raw_dir(self) -> Path:
        return self.root / "raw"

    @property
    def output_dir(self) -> Path:
        return self.root / "output"


def remove_workspace(workspace: JobWorkspace) -> bool:
    """Best-effort removal; failures are logged, never raised."""
    try:
        shutil.rmtree(workspace.root)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning("Failed to remove workspace %s for video %s: %s", workspace.root, workspace.video_id, e)
        return False
    logger.debug("Removed workspace %s", workspace.root)
    return True


@contextmanager
def job_workspace(video_id: str, root: Path | None = None):
    """
    Allocate raw/ and output/ under a directory unique to this delivery of the
    job and remove it on every exit path.
    """
    base = Path(root or settings.WORK_ROOT)
    try:
        base.mkdir(parents=True, exist_ok=True)
        workspace = JobWorkspace(video_id=video_id, root=Path(tempfile.mkdtemp(prefix=f"job-{video_id}-", dir=base)))
    except OSError as e:
        raise StagingError(f"Could not create workspace under {base}: {e}", video_id=video_id) from e

    try:
        try:
            workspace.raw_dir.mkdir()
            workspace.output_dir.mkdir()
        except OSError as e:
            raise StagingError(f"Could not create scratch directories in {workspace.root}: {e}", video_id=video_id) from e
        yield workspace
    finally:
        remove_workspace(workspace)


def stage_source(store, video, workspace: JobWorkspace) -> Path:
    """Download the raw upload into the workspace and return its local path."""
    local_path = workspace.raw_dir / safe_basename(video.file_name)
    logger.info("Downloading s3://%s/%s for video %s", settings.RAW_BUCKET, video.s3key, video.id)
    try:
        store.download_file(settings.RAW_BUCKET, video.s3key, local_path)
    except S3_ERRORS as e:
        raise StagingError(f"Could not fetch source {video.s3key}: {e}", video_id=str(video.id)) from e

    if not local_path.is_file():
        raise StagingError(f"Source {video.s3key} was not written to {local_path}", video_id=str(video.id))
    return local_path
