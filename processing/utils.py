import mimetypes
from pathlib import PurePosixPath, PureWindowsPath


def safe_basename(file_name: str, fallback: str = "source") -> str:
    """Strip any directory part (either separator style) from a stored filename."""
    name = PureWindowsPath(PurePosixPath(file_name or "").name).name.strip()
    if name in ("", ".", ".."):
        return fallback
    return name


def content_type_for(path: str) -> str:
    """Return a Content-Type for an output file based on its extension."""
    mime, _ = mimetypes.guess_type(str(path))
    return mime or "application/octet-stream"
