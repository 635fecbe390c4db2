import uuid

import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Video",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(max_length=255)),
                ("file_name", models.CharField(max_length=512)),
                ("s3key", models.CharField(max_length=1024)),
                ("upload_time", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("thumbnail_url", models.CharField(blank=True, max_length=1024, null=True)),
                ("video_480p_url", models.CharField(blank=True, max_length=1024, null=True)),
                ("video_720p_url", models.CharField(blank=True, max_length=1024, null=True)),
            ],
            options={
                "db_table": "video",
            },
        ),
    ]
