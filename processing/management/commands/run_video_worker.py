import logging

from django.conf import settings
from django.core.management.base import BaseCommand
from kombu import Connection

from processing.consumer import VideoJobConsumer
from processing.pipeline import build_pipeline

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Consume video jobs from the work queue and run the transcode pipeline."

    def add_arguments(self, parser):
        parser.add_argument("--broker-url", default=None, help="AMQP URL; defaults to settings.BROKER_URL")
        parser.add_argument("--prefetch", type=int, default=None, help="Unacknowledged messages held at once")

    def handle(self, *args, **options):
        broker_url = options["broker_url"] or settings.BROKER_URL
        # Clients are built once here and shared by every job this process runs
        pipeline = build_pipeline()

        with Connection(broker_url, heartbeat=settings.BROKER_HEARTBEAT) as connection:
            consumer = VideoJobConsumer(connection, pipeline, prefetch_count=options["prefetch"])
            try:
                consumer.run()
            except KeyboardInterrupt:
                consumer.should_stop = True
            finally:
                consumer.close()
            logger.info("Video worker stopped")
