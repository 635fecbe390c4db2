"""
Rendition descriptors.

Each rendition is plain data: the ffmpeg argument vector, where the output
lands locally, and the deterministic key it is published under. Nothing here
touches the filesystem or the network.
"""
from dataclasses import dataclass
from pathlib import Path

from django.conf import settings

from .utils import content_type_for

THUMBNAIL = "thumbnail"
VIDEO_480P = "480p"
VIDEO_720P = "720p"

RENDITION_KINDS = (THUMBNAIL, VIDEO_480P, VIDEO_720P)

RENDITION_FILE_NAMES = {
    THUMBNAIL: "thumb.jpg",
    VIDEO_480P: "video_480p.mp4",
    VIDEO_720P: "video_720p.mp4",
}

# Video model field each rendition's key is written to
RENDITION_FIELDS = {
    THUMBNAIL: "thumbnail_url",
    VIDEO_480P: "video_480p_url",
    VIDEO_720P: "video_720p_url",
}


@dataclass(frozen=True)
class Rendition:
    kind: str
    file_name: str
    local_path: Path
    remote_key: str
    content_type: str
    args: tuple
    # tried once when ``args`` fails or writes nothing
    fallback_args: tuple | None = None


def rendition_key(user_id: str, video_id: str, file_name: str) -> str:
    """Deterministic key: ``{userId}/{videoId}/{renditionFileName}``."""
    return f"{user_id}/{video_id}/{file_name}"


def thumbnail_args(input_path: Path, output_path: Path, offset_seconds: int | None = None) -> tuple:
    """One frame near the start of the stream as a high quality JPEG."""
    if offset_seconds is None:
        offset_seconds = settings.THUMBNAIL_OFFSET_SECONDS
    return (
        "-y",
        "-ss", str(offset_seconds),
        "-i", str(input_path),
        "-frames:v", "1",
        "-q:v", "2",
        str(output_path),
    )


def scaled_video_args(input_path: Path, output_path: Path, height: int) -> tuple:
    """H.264/AAC MP4 scaled to ``height``; -2 keeps the width even."""
    return (
        "-y",
        "-i", str(input_path),
        "-vf", f"scale=-2:{height}",
        "-c:v", "libx264",
        "-preset", "veryfast",
        "-crf", "23",
        "-c:a", "aac",
        "-b:a", "128k",
        "-movflags", "+faststart",
        str(output_path),
    )


def build_renditions(video, source_path: Path, output_dir: Path) -> list[Rendition]:
    """The fixed rendition set for one job, in publish order."""
    video_id = str(video.id)
    renditions = []
    for kind in RENDITION_KINDS:
        file_name = RENDITION_FILE_NAMES[kind]
        local_path = Path(output_dir) / file_name
        fallback_args = None
        if kind == THUMBNAIL:
            args = thumbnail_args(source_path, local_path)
            # sources shorter than the offset have no frame there
            if settings.THUMBNAIL_OFFSET_SECONDS:
                fallback_args = thumbnail_args(source_path, local_path, offset_seconds=0)
        elif kind == VIDEO_480P:
            args = scaled_video_args(source_path, local_path, 480)
        else:
            args = scaled_video_args(source_path, local_path, 720)
        renditions.append(Rendition(
            kind=kind,
            file_name=file_name,
            local_path=local_path,
            remote_key=rendition_key(video.user_id, video_id, file_name),
            content_type=content_type_for(file_name),
            args=args,
            fallback_args=fallback_args,
        ))
    return renditions
