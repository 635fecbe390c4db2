from celery import shared_task
from celery.utils.log import get_task_logger

from .errors import JobFailed
from .messages import JobPayload
from .pipeline import build_pipeline

logger = get_task_logger(__name__)


@shared_task(bind=True, acks_late=True, reject_on_worker_lost=True)
def process_video(self, video_id: str) -> dict:
    """
    Run the pipeline for one video.

    The message is acknowledged only once the job reached a terminal state.
    A failed job raises JobFailed; with acks_on_failure_or_timeout disabled
    Celery rejects it and the broker routes it to the dead-letter queue.
    """
    payload = JobPayload.from_body({"videoId": video_id})
    redelivered = bool((self.request.delivery_info or {}).get("redelivered"))
    if redelivered:
        logger.info("Video %s was redelivered; a stale processing claim may be taken over", payload.video_id)

    result = build_pipeline().run(payload.video_id, reclaim=redelivered)
    if not result.succeeded:
        raise JobFailed(f"Video {result.video_id} failed at {result.failed_stage}: {result.error}")

    return {
        "video_id": result.video_id,
        "skipped": result.skipped,
        "outputs": result.published_keys,
        "durations": result.durations,
    }
