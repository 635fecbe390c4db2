"""
Per-job orchestration: resolve, claim, stage, transcode, publish, finalize.

A job moves through RECEIVED -> RESOLVED -> STAGED -> TRANSCODING ->
PUBLISHED -> FINALIZED. Any failure jumps straight to FINALIZED with
``succeeded=False``; the workspace is removed on every path. ``run`` never
raises for a job failure, so one bad job cannot take the consumer down.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache

from django.db import DatabaseError

from .errors import FinalizeError, JobInProgress, PipelineError, VideoNotFound
from .metadata import AlreadyProcessed, claim_video, finalize_failure, finalize_success, resolve_video
from .publish import publish_renditions
from .renditions import build_renditions
from .s3 import ObjectStore, object_url
from .staging import job_workspace, stage_source
from .transcode import TranscodeExecutor, ensure_success

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    RECEIVED = "received"
    RESOLVED = "resolved"
    STAGED = "staged"
    TRANSCODING = "transcoding"
    PUBLISHED = "published"
    FINALIZED = "finalized"


@dataclass
class JobResult:
    video_id: str
    state: JobState = JobState.RECEIVED
    # step currently running; names match PipelineError.stage
    stage: str = "intake"
    succeeded: bool = False
    skipped: bool = False
    failed_stage: str | None = None
    error: str | None = None
    published_keys: dict = field(default_factory=dict)
    durations: dict = field(default_factory=dict)


class VideoPipeline:
    """
    Runs one job at a time against injected collaborators.

    ``store`` is an ObjectStore-like object (download_file/upload_file) and
    ``executor`` a TranscodeExecutor-like object (execute). Both are expected to
    be long-lived and shared across jobs; the pipeline keeps no per-job state
    on itself.
    """

    def __init__(self, store, executor=None, work_root=None):
        self.store = store
        self.executor = executor or TranscodeExecutor()
        self.work_root = work_root

    def run(self, video_id: str, *, reclaim: bool = False) -> JobResult:
        result = JobResult(video_id=video_id)
        logger.info("Received job for video %s", video_id)

        result.stage = "resolve"
        try:
            video = resolve_video(video_id)
        except (VideoNotFound, DatabaseError) as e:
            return self._abandon(result, e)
        result.state = JobState.RESOLVED

        result.stage = "claim"
        try:
            claim_video(video, reclaim=reclaim)
        except AlreadyProcessed:
            logger.info("Video %s was already processed; skipping duplicate delivery", video_id)
            result.succeeded = True
            result.skipped = True
            result.state = JobState.FINALIZED
            return result
        except (JobInProgress, VideoNotFound, DatabaseError) as e:
            return self._abandon(result, e)

        result.stage = "stage"
        try:
            with job_workspace(video_id, root=self.work_root) as workspace:
                self._process(video, workspace, result)
        except PipelineError as e:
            self._fail(result, e, e.stage)
        except Exception as e:
            logger.exception("Unexpected error for video %s during %s", video_id, result.stage)
            self._fail(result, e, result.stage)
        else:
            self._succeed(result)
        return result

    def _process(self, video, workspace, result: JobResult) -> None:
        video_id = str(video.id)

        source = stage_source(self.store, video, workspace)
        result.state = JobState.STAGED

        result.stage = "transcode"
        renditions = build_renditions(video, source, workspace.output_dir)
        result.state = JobState.TRANSCODING
        results = self.executor.execute(renditions)
        result.durations = {r.kind: round(r.duration, 3) for r in results}
        logger.info("Transcode timings for video %s: %s", video_id, result.durations)
        ensure_success(results, video_id=video_id)

        result.stage = "publish"
        result.published_keys = publish_renditions(self.store, renditions, video_id=video_id)
        result.state = JobState.PUBLISHED

    def _abandon(self, result: JobResult, error: Exception) -> JobResult:
        """Stop without touching storage, the filesystem or the record."""
        result.failed_stage = getattr(error, "stage", result.stage)
        result.error = str(error)
        result.state = JobState.FINALIZED
        logger.warning("Abandoned video %s at %s: %s", result.video_id, result.failed_stage, error)
        return result

    def _fail(self, result: JobResult, error: Exception, stage: str) -> None:
        result.failed_stage = stage
        result.error = str(error)
        logger.error("Video %s failed at %s: %s", result.video_id, stage, error)
        try:
            finalize_failure(result.video_id)
        except FinalizeError as e:
            logger.error("Video %s left in its prior state: %s", result.video_id, e)
        result.succeeded = False
        result.state = JobState.FINALIZED

    def _succeed(self, result: JobResult) -> None:
        result.stage = "finalize"
        try:
            finalize_success(result.video_id, result.published_keys)
        except FinalizeError as e:
            self._fail(result, e, e.stage)
            return
        result.succeeded = True
        result.state = JobState.FINALIZED
        logger.info(
            "Video %s processed: %s",
            result.video_id,
            ", ".join(object_url(key) for key in result.published_keys.values()),
        )


@lru_cache(maxsize=1)
def build_pipeline() -> VideoPipeline:
    """Process-wide pipeline with one S3 client and one executor."""
    return VideoPipeline(store=ObjectStore(), executor=TranscodeExecutor())
