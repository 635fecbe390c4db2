import json
import uuid
from dataclasses import dataclass

from .errors import InvalidPayload


@dataclass(frozen=True)
class JobPayload:
    """The queue contract: ``{"videoId": "<uuid>"}``."""
    video_id: str

    @classmethod
    def from_body(cls, body) -> "JobPayload":
        """
        Accept raw bytes, a JSON string, or a mapping already decoded by kombu.
        The id is normalised to the canonical lowercase UUID form.
        """
        if isinstance(body, (bytes, bytearray)):
            try:
                body = body.decode("utf-8")
            except UnicodeDecodeError as e:
                raise InvalidPayload(f"Message body is not UTF-8: {e}")
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except json.JSONDecodeError as e:
                raise InvalidPayload(f"Message body is not JSON: {e}")
        if not isinstance(body, dict):
            raise InvalidPayload(f"Message body must be a JSON object, got {type(body).__name__}")

        raw_id = body.get("videoId")
        if not isinstance(raw_id, str) or not raw_id.strip():
            raise InvalidPayload("Message body has no videoId")
        try:
            video_id = str(uuid.UUID(raw_id.strip()))
        except ValueError:
            raise InvalidPayload(f"videoId is not a UUID: {raw_id!r}", video_id=raw_id)
        return cls(video_id=video_id)

    def to_body(self) -> dict:
        return {"videoId": self.video_id}
