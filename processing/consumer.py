"""
AMQP consumer for plain ``{"videoId": ...}`` messages.

Upstream producers publish bare JSON to the work queue rather than Celery task
envelopes, so this consumer reads the queue with kombu directly. Messages are
acknowledged only after the job reaches a terminal state; failed jobs are
rejected without requeue and RabbitMQ moves them to the dead-letter queue.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, wait

from django.conf import settings
from django.db import close_old_connections
from kombu import Queue
from kombu.mixins import ConsumerMixin

from .errors import InvalidPayload
from .messages import JobPayload

logger = logging.getLogger(__name__)


def _configured_queue(name: str) -> Queue:
    for queue in settings.CELERY_TASK_QUEUES:
        if queue.name == name:
            return queue
    raise LookupError(f"Queue {name!r} is not declared in CELERY_TASK_QUEUES")


def work_queue() -> Queue:
    return _configured_queue(settings.VIDEO_QUEUE)


def dead_letter_queue() -> Queue:
    return _configured_queue(settings.VIDEO_DEAD_LETTER_QUEUE)


class VideoJobConsumer(ConsumerMixin):
    """
    Jobs run on a single worker thread while the consumer thread keeps
    draining the connection, so broker heartbeats flow during long transcodes.
    Messages are acked or rejected on the consumer thread only; the AMQP
    channel is not thread-safe.
    """

    def __init__(self, connection, pipeline, prefetch_count: int | None = None):
        self.connection = connection
        self.pipeline = pipeline
        self.prefetch_count = prefetch_count or settings.WORKER_PREFETCH
        self.jobs = ThreadPoolExecutor(max_workers=1, thread_name_prefix="video-job")
        # (message, future) in delivery order
        self.pending = []

    def get_consumers(self, Consumer, channel):
        # The dead-letter queue has to exist for rejected messages to be kept
        dead_letter_queue()(channel).declare()
        return [
            Consumer(
                queues=[work_queue()],
                callbacks=[self.on_message],
                accept=["json"],
                prefetch_count=self.prefetch_count,
                on_decode_error=self.on_decode_error,
            )
        ]

    def on_connection_revived(self):
        if self.pending:
            # delivery tags died with the old channel; the broker redelivers these
            logger.warning("Connection lost with %d job(s) unacknowledged; they will be redelivered", len(self.pending))
            self.pending = []

    def on_consume_ready(self, connection, channel, consumers, **kwargs):
        logger.info("Listening for video jobs on %r", settings.VIDEO_QUEUE)

    def on_consume_end(self, connection, channel):
        # let running jobs reach a terminal state before giving up their messages
        wait([future for _, future in self.pending])
        self.settle_finished()

    def on_iteration(self):
        self.settle_finished()

    def on_decode_error(self, message, exc):
        logger.error("Dead-lettering undecodable message: %s", exc)
        message.reject(requeue=False)

    def on_message(self, body, message):
        try:
            payload = JobPayload.from_body(body)
        except InvalidPayload as e:
            logger.error("Dead-lettering malformed message: %s", e)
            message.reject(requeue=False)
            return

        redelivered = bool((message.delivery_info or {}).get("redelivered"))
        future = self.jobs.submit(self.run_job, payload.video_id, redelivered)
        self.pending.append((message, future))

    def run_job(self, video_id: str, reclaim: bool):
        close_old_connections()
        try:
            return self.pipeline.run(video_id, reclaim=reclaim)
        finally:
            close_old_connections()

    def settle_finished(self):
        """Ack or reject every message whose job has finished."""
        while self.pending and self.pending[0][1].done():
            message, future = self.pending.pop(0)
            self.settle(message, future.result())

    def settle(self, message, result):
        if result.succeeded:
            message.ack()
            return
        logger.warning(
            "Dead-lettering video %s (failed at %s): %s",
            result.video_id, result.failed_stage, result.error,
        )
        message.reject(requeue=False)

    def close(self):
        self.jobs.shutdown(wait=True)
