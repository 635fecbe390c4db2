import uuid
from django.db import models
from django.utils import timezone


class Video(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        PROCESSED = "processed"
        FAILED = "failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=255)
    file_name = models.CharField(max_length=512)
    s3key = models.CharField(max_length=1024)          # key in the raw-uploads bucket
    upload_time = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)

    # Rendition keys in the processed-videos bucket; set together on success
    thumbnail_url = models.CharField(max_length=1024, null=True, blank=True)
    video_480p_url = models.CharField(max_length=1024, null=True, blank=True)
    video_720p_url = models.CharField(max_length=1024, null=True, blank=True)

    class Meta:
        db_table = "video"

    def __str__(self):
        return f"{self.id} ({self.status})"
