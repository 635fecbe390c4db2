import logging

from django.conf import settings

from .errors import PublishError
from .s3 import S3_ERRORS

logger = logging.getLogger(__name__)


def publish_renditions(store, renditions, video_id: str | None = None) -> dict:
    """
    Upload each rendition to the processed bucket under its deterministic key.

    Stops at the first failure. Objects uploaded before it are left in place;
    a retry of the job overwrites them at the same keys.
    Returns {kind: key}.
    """
    published = {}
    for rendition in renditions:
        try:
            store.upload_file(
                rendition.local_path,
                settings.PROCESSED_BUCKET,
                rendition.remote_key,
                content_type=rendition.content_type,
            )
        except S3_ERRORS as e:
            raise PublishError(
                f"Upload of {rendition.kind} to {rendition.remote_key} failed: {e}",
                video_id=video_id,
                rendition=rendition.kind,
            ) from e
        logger.info("Published %s to s3://%s/%s", rendition.kind, settings.PROCESSED_BUCKET, rendition.remote_key)
        published[rendition.kind] = rendition.remote_key
    return published
