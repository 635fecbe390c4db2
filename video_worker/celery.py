import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "video_worker.settings")

celery_app = Celery("video_worker")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()
