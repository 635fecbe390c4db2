"""
Failure taxonomy for the video job pipeline.

Every error carries the video id and the stage it came from so the
orchestrator can log and finalize without inspecting the type.
"""


class PipelineError(Exception):
    stage = "pipeline"

    def __init__(self, message: str, *, video_id: str | None = None):
        super().__init__(message)
        self.video_id = video_id


class InvalidPayload(PipelineError):
    """Message body is not a JSON object with a UUID videoId."""
    stage = "intake"


class VideoNotFound(PipelineError):
    stage = "resolve"


class JobInProgress(PipelineError):
    """Another delivery already claimed this video."""
    stage = "claim"


class StagingError(PipelineError):
    stage = "stage"


class TranscodeError(PipelineError):
    stage = "transcode"

    def __init__(self, message: str, *, video_id: str | None = None, failures: dict | None = None):
        super().__init__(message, video_id=video_id)
        # kind -> diagnostic
        self.failures = failures or {}


class PublishError(PipelineError):
    stage = "publish"

    def __init__(self, message: str, *, video_id: str | None = None, rendition: str | None = None):
        super().__init__(message, video_id=video_id)
        self.rendition = rendition


class FinalizeError(PipelineError):
    stage = "finalize"


class JobFailed(Exception):
    """Raised by the Celery task so the broker dead-letters the message."""
