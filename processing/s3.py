import logging
from pathlib import Path
import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

logger = logging.getLogger(__name__)

# boto3 transfers wrap client errors in S3UploadFailedError / RetriesExceededError
S3_ERRORS = (ClientError, BotoCoreError, Boto3Error, OSError)


def get_s3_client():
    """
    SDK client for server-side upload/download.
    Timeouts and retries are bounded so a stalled endpoint cannot hang a job.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://localhost:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            retries={"max_attempts": settings.S3_MAX_ATTEMPTS, "mode": "standard"},
        ),
    )


class ObjectStore:
    """
    Thin wrapper over one long-lived boto3 client.
    Errors from botocore propagate; callers map them onto pipeline stages.
    """

    def __init__(self, client=None):
        self.client = client or get_s3_client()

    def download_file(self, bucket: str, key: str, local_path) -> Path:
        local_path = Path(local_path)
        self.client.download_file(bucket, key, str(local_path))
        logger.debug("Downloaded s3://%s/%s to %s", bucket, key, local_path)
        return local_path

    def upload_file(self, local_path, bucket: str, key: str, content_type: str | None = None):
        """
        Upload a single file with an optional Content-Type.
        Existing objects at the same key are overwritten.
        """
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        self.client.upload_file(str(local_path), bucket, key, ExtraArgs=extra or None)
        logger.debug("Uploaded %s to s3://%s/%s", local_path, bucket, key)


def object_url(key: str, bucket: str | None = None) -> str:
    """
    Dev convenience: construct a direct object URL for a processed rendition.
    """
    bucket = bucket or settings.PROCESSED_BUCKET
    return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{bucket}/{key}"
