"""
Reads and writes of the Video record.

The pipeline reads the record once, claims it, and writes it once more at the
end. Writes are single conditional UPDATE statements so the three rendition
keys become visible together with the ``processed`` status.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import DatabaseError

from .errors import FinalizeError, JobInProgress, VideoNotFound
from .models import Video
from .renditions import RENDITION_FIELDS, RENDITION_KINDS

logger = logging.getLogger(__name__)

CLAIMABLE = (Video.Status.PENDING, Video.Status.FAILED)


class AlreadyProcessed(Exception):
    """The record finished on an earlier delivery; nothing to do."""


def resolve_video(video_id: str) -> Video:
    try:
        return Video.objects.get(pk=video_id)
    except (Video.DoesNotExist, ValidationError):
        raise VideoNotFound(f"Video {video_id} not found", video_id=video_id)


def claim_video(video: Video, *, reclaim: bool = False) -> Video:
    """
    Move the record to ``processing``.

    Allowed from pending/failed. A record left in ``processing`` is only taken
    over when ``reclaim`` is set, i.e. the broker redelivered the message after
    a worker died mid-job.
    """
    allowed = list(CLAIMABLE)
    if reclaim:
        allowed.append(Video.Status.PROCESSING)

    updated = Video.objects.filter(pk=video.pk, status__in=allowed).update(status=Video.Status.PROCESSING)
    if updated:
        logger.debug("Claimed video %s for processing", video.pk)
        video.status = Video.Status.PROCESSING
        return video

    current = Video.objects.filter(pk=video.pk).values_list("status", flat=True).first()
    if current is None:
        raise VideoNotFound(f"Video {video.pk} disappeared before it was claimed", video_id=str(video.pk))
    if current == Video.Status.PROCESSED:
        raise AlreadyProcessed(str(video.pk))
    raise JobInProgress(f"Video {video.pk} is already {current}", video_id=str(video.pk))


def finalize_success(video_id: str, keys: dict) -> None:
    """Set status ``processed`` and all three rendition keys in one UPDATE."""
    missing = [k for k in RENDITION_KINDS if not keys.get(k)]
    if missing:
        raise FinalizeError(f"Missing rendition keys: {', '.join(missing)}", video_id=video_id)

    fields = {RENDITION_FIELDS[kind]: keys[kind] for kind in RENDITION_KINDS}
    try:
        updated = Video.objects.filter(pk=video_id).update(status=Video.Status.PROCESSED, **fields)
    except DatabaseError as e:
        raise FinalizeError(f"Could not mark video {video_id} processed: {e}", video_id=video_id) from e
    if not updated:
        raise FinalizeError(f"Video {video_id} vanished before finalization", video_id=video_id)


def finalize_failure(video_id: str) -> None:
    """Set status ``failed``; rendition keys from earlier runs stay as they are."""
    try:
        updated = Video.objects.filter(pk=video_id).update(status=Video.Status.FAILED)
    except DatabaseError as e:
        raise FinalizeError(f"Could not mark video {video_id} failed: {e}", video_id=video_id) from e
    if not updated:
        raise FinalizeError(f"Video {video_id} vanished before finalization", video_id=video_id)
