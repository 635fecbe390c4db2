import uuid
from pathlib import Path

import pytest
from botocore.stub import Stubber
from celery.exceptions import SoftTimeLimitExceeded

from conftest import PROCESSED_BUCKET, RAW_BUCKET, VIDEO_ID, FakeRunner, scratch_dirs
from processing.models import Video
from processing.pipeline import JobState, VideoPipeline
from processing.s3 import ObjectStore
from processing.transcode import TranscodeExecutor

EXPECTED_KEYS = [
    f"u1/{VIDEO_ID}/thumb.jpg",
    f"u1/{VIDEO_ID}/video_480p.mp4",
    f"u1/{VIDEO_ID}/video_720p.mp4",
]


@pytest.mark.django_db
class TestSuccessfulJob:

    def test_publishes_three_renditions_and_marks_processed(self, video, store, make_pipeline, work_root):
        result = make_pipeline().run(VIDEO_ID)

        assert result.succeeded
        assert result.state == JobState.FINALIZED
        assert store.keys(PROCESSED_BUCKET) == EXPECTED_KEYS

        video.refresh_from_db()
        assert video.status == Video.Status.PROCESSED
        assert video.thumbnail_url == f"u1/{VIDEO_ID}/thumb.jpg"
        assert video.video_480p_url == f"u1/{VIDEO_ID}/video_480p.mp4"
        assert video.video_720p_url == f"u1/{VIDEO_ID}/video_720p.mp4"
        assert scratch_dirs(work_root) == []

    def test_records_duration_per_rendition(self, video, make_pipeline):
        result = make_pipeline().run(VIDEO_ID)

        assert set(result.durations) == {"thumbnail", "480p", "720p"}
        assert all(d >= 0 for d in result.durations.values())

    def test_rendition_content_types(self, video, store, make_pipeline):
        make_pipeline().run(VIDEO_ID)

        types = {key.rsplit("/", 1)[-1]: ct for _, key, ct in store.uploads}
        assert types == {
            "thumb.jpg": "image/jpeg",
            "video_480p.mp4": "video/mp4",
            "video_720p.mp4": "video/mp4",
        }

    def test_rerun_overwrites_the_same_keys(self, video, store, make_pipeline):
        make_pipeline().run(VIDEO_ID)
        Video.objects.filter(pk=VIDEO_ID).update(status=Video.Status.FAILED)

        result = make_pipeline().run(VIDEO_ID)

        assert result.succeeded
        assert store.keys(PROCESSED_BUCKET) == EXPECTED_KEYS
        assert [k for _, k, _ in store.uploads] == EXPECTED_KEYS * 2

    def test_duplicate_delivery_of_processed_video_is_skipped(self, video, store, make_pipeline):
        make_pipeline().run(VIDEO_ID)
        uploads = len(store.uploads)

        runner = FakeRunner()
        result = make_pipeline(runner).run(VIDEO_ID)

        assert result.succeeded and result.skipped
        assert runner.calls == []
        assert len(store.uploads) == uploads


@pytest.mark.django_db
class TestFailedJob:

    def test_unknown_video_has_no_side_effects(self, store, make_pipeline, work_root):
        result = make_pipeline().run(str(uuid.uuid4()))

        assert not result.succeeded
        assert result.failed_stage == "resolve"
        assert store.downloads == [] and store.uploads == []
        assert scratch_dirs(work_root) == []

    def test_720p_failure_fails_the_whole_job(self, video, store, make_pipeline, work_root):
        runner = FakeRunner(fail_on={"video_720p.mp4"})
        result = make_pipeline(runner).run(VIDEO_ID)

        assert not result.succeeded
        assert result.failed_stage == "transcode"
        # siblings were not cancelled by the failure
        assert sorted(runner.calls) == ["thumb.jpg", "video_480p.mp4", "video_720p.mp4"]
        assert store.uploads == []

        video.refresh_from_db()
        assert video.status == Video.Status.FAILED
        assert video.video_720p_url is None
        assert scratch_dirs(work_root) == []

    def test_missing_source_fails_before_transcoding(self, video, store, make_pipeline, work_root):
        del store.objects[(RAW_BUCKET, video.s3key)]
        runner = FakeRunner()

        result = make_pipeline(runner).run(VIDEO_ID)

        assert result.failed_stage == "stage"
        assert runner.calls == []
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.FAILED
        assert scratch_dirs(work_root) == []

    def test_publish_failure_leaves_earlier_uploads(self, video, store, make_pipeline, work_root):
        store.fail_uploads.add("video_480p.mp4")

        result = make_pipeline().run(VIDEO_ID)

        assert result.failed_stage == "publish"
        assert store.keys(PROCESSED_BUCKET) == [f"u1/{VIDEO_ID}/thumb.jpg"]
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.FAILED
        assert scratch_dirs(work_root) == []

    def test_failure_keeps_urls_from_an_earlier_run(self, video, make_pipeline):
        Video.objects.filter(pk=VIDEO_ID).update(thumbnail_url="old/thumb.jpg")

        make_pipeline(FakeRunner(fail_on={"thumb.jpg"})).run(VIDEO_ID)

        video.refresh_from_db()
        assert video.status == Video.Status.FAILED
        assert video.thumbnail_url == "old/thumb.jpg"

    def test_video_in_progress_elsewhere_is_left_alone(self, video, store, make_pipeline):
        Video.objects.filter(pk=VIDEO_ID).update(status=Video.Status.PROCESSING)

        result = make_pipeline().run(VIDEO_ID)

        assert not result.succeeded
        assert result.failed_stage == "claim"
        assert store.downloads == []
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.PROCESSING

    def test_redelivery_reclaims_a_stale_processing_record(self, video, make_pipeline):
        Video.objects.filter(pk=VIDEO_ID).update(status=Video.Status.PROCESSING)

        result = make_pipeline().run(VIDEO_ID, reclaim=True)

        assert result.succeeded
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.PROCESSED

    def test_finalize_error_is_logged_and_job_fails(self, video, make_pipeline, monkeypatch):
        from processing import pipeline as pipeline_module
        from processing.errors import FinalizeError

        def broken(video_id, keys):
            raise FinalizeError("database went away", video_id=video_id)

        monkeypatch.setattr(pipeline_module, "finalize_success", broken)

        result = make_pipeline().run(VIDEO_ID)

        assert not result.succeeded
        assert result.failed_stage == "finalize"
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.FAILED

    def test_rejected_upload_through_boto3_fails_at_publish(self, video, store, s3_client, work_root):
        real = ObjectStore(s3_client)
        store.upload_file = real.upload_file
        pipeline = VideoPipeline(store=store, executor=TranscodeExecutor(runner=FakeRunner()), work_root=work_root)

        with Stubber(s3_client) as stubber:
            stubber.add_client_error("put_object", service_error_code="InternalError", http_status_code=500)
            result = pipeline.run(VIDEO_ID)

        assert not result.succeeded
        assert result.failed_stage == "publish"
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.FAILED
        assert scratch_dirs(work_root) == []

    def test_unexpected_staging_error_is_reported_at_stage(self, video, store, make_pipeline, work_root):
        def broken(bucket, key, local_path):
            raise RuntimeError("disk controller on fire")

        store.download_file = broken
        runner = FakeRunner()

        result = make_pipeline(runner).run(VIDEO_ID)

        assert result.failed_stage == "stage"
        assert "disk controller" in result.error
        assert runner.calls == []
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.FAILED
        assert scratch_dirs(work_root) == []

    def test_unexpected_transcode_error_is_reported_at_transcode(self, video, make_pipeline, monkeypatch):
        def broken(self, renditions):
            raise RuntimeError("pool shut down")

        monkeypatch.setattr(TranscodeExecutor, "execute", broken)

        result = make_pipeline().run(VIDEO_ID)

        assert result.failed_stage == "transcode"
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.FAILED

    def test_soft_time_limit_fails_and_cleans_up(self, video, make_pipeline, monkeypatch, work_root):
        def too_slow(self, renditions):
            raise SoftTimeLimitExceeded()

        monkeypatch.setattr(TranscodeExecutor, "execute", too_slow)

        result = make_pipeline().run(VIDEO_ID)

        assert not result.succeeded
        assert result.state == JobState.FINALIZED
        assert result.failed_stage == "transcode"
        assert Video.objects.get(pk=VIDEO_ID).status == Video.Status.FAILED
        assert scratch_dirs(work_root) == []

    def test_short_source_still_gets_a_thumbnail(self, video, make_pipeline):
        def runner(args, timeout=None):
            # nothing to grab at the default offset
            if "-ss" in args and args[args.index("-ss") + 1] != "0":
                return
            Path(args[-1]).write_bytes(b"ok")

        result = make_pipeline(runner).run(VIDEO_ID)

        assert result.succeeded
        assert Video.objects.get(pk=VIDEO_ID).thumbnail_url == f"u1/{VIDEO_ID}/thumb.jpg"
