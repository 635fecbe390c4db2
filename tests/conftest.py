from pathlib import Path

import boto3
import pytest
from botocore.exceptions import ClientError

from processing.errors import TranscodeError
from processing.models import Video
from processing.pipeline import VideoPipeline
from processing.transcode import TranscodeExecutor

VIDEO_ID = "11111111-1111-1111-1111-111111111111"
RAW_BUCKET = "raw-uploads"
PROCESSED_BUCKET = "processed-videos"


class FakeObjectStore:
    """In-memory stand-in for ObjectStore keyed by (bucket, key)."""

    def __init__(self):
        self.objects = {}
        self.downloads = []
        self.uploads = []
        self.fail_uploads = set()

    def put(self, bucket, key, data: bytes):
        self.objects[(bucket, key)] = data

    def download_file(self, bucket, key, local_path):
        self.downloads.append((bucket, key))
        if (bucket, key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        Path(local_path).write_bytes(self.objects[(bucket, key)])
        return Path(local_path)

    def upload_file(self, local_path, bucket, key, content_type=None):
        self.uploads.append((bucket, key, content_type))
        if key.rsplit("/", 1)[-1] in self.fail_uploads:
            raise ClientError({"Error": {"Code": "500", "Message": "InternalError"}}, "PutObject")
        self.objects[(bucket, key)] = Path(local_path).read_bytes()

    def keys(self, bucket):
        return sorted(k for b, k in self.objects if b == bucket)


class FakeRunner:
    """Writes the output file named by the last argument, or fails for chosen names."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []

    def __call__(self, args, timeout=None):
        output = Path(args[-1])
        self.calls.append(output.name)
        if output.name in self.fail_on:
            raise TranscodeError(f"ffmpeg exited with 1: cannot encode {output.name}")
        output.write_bytes(b"rendition:" + output.name.encode())


@pytest.fixture(autouse=True)
def _worker_settings(settings, tmp_path):
    settings.RAW_BUCKET = RAW_BUCKET
    settings.PROCESSED_BUCKET = PROCESSED_BUCKET
    settings.WORK_ROOT = tmp_path / "work"
    settings.TRANSCODE_MAX_WORKERS = 3
    settings.TRANSCODE_TIMEOUT_SECONDS = 5
    settings.THUMBNAIL_OFFSET_SECONDS = 5


@pytest.fixture
def work_root(settings):
    return settings.WORK_ROOT


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def video(db, store):
    record = Video.objects.create(
        id=VIDEO_ID,
        user_id="u1",
        file_name="clip.mp4",
        s3key=f"u1/{VIDEO_ID}/clip.mp4",
        status=Video.Status.PENDING,
    )
    store.put(RAW_BUCKET, record.s3key, b"raw video bytes")
    return record


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def make_pipeline(store, work_root):
    def _make(runner=None, max_workers=None):
        executor = TranscodeExecutor(runner=runner or FakeRunner(), max_workers=max_workers)
        return VideoPipeline(store=store, executor=executor, work_root=work_root)
    return _make


def scratch_dirs(root: Path):
    if not root.exists():
        return []
    return [p for p in root.iterdir()]


@pytest.fixture
def s3_client():
    """Real S3 client with static credentials; wrap it in a Stubber before use."""
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )
