# video_files.py
"""
Locating uploaded video files on disk and serving them.

Integrity check: the first 12 bytes must carry an
MP4 box marker. Codec, duration and checksums are not inspected.
"""
import os
import re
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple
from urllib.parse import quote

log = logging.getLogger("downloads")

UPLOAD_ROOT = Path(os.getenv("UPLOAD_ROOT", "uploads"))
CHUNK_SIZE = 64 * 1024

# (marker, description); matched anywhere in the first 12 bytes
MP4_SIGNATURES = (
    (b"ftypmp42", "ftyp mp42"),
    (b"ftypisom", "ftyp isom"),
    (b"ftypMSNV", "ftyp MSNV"),
    (b"ftyp", "ftyp"),
    (b"mdat", "mdat"),
)

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class RangeNotSatisfiable(ValueError):
    pass


def extract_filename(video) -> Optional[str]:
    """Stored file name of a video row; falls back to the basename of filepath."""
    name = getattr(video, "filename", None) or None
    if not name:
        path = getattr(video, "filepath", None) or ""
        name = re.split(r"[\\/]", path)[-1] if path else None
    if name:
        name = re.sub(r"^.*[\\/]", "", name)
    return name or None


def search_paths(filename: str) -> List[Path]:
    return [
        UPLOAD_ROOT / "videos" / filename,
        UPLOAD_ROOT / filename,
        Path.cwd() / filename,
    ]


def find_video_file(filename: str) -> Optional[Path]:
    if not filename or filename in (".", "..") or "/" in filename or "\\" in filename:
        return None
    for candidate in search_paths(filename):
        if candidate.is_file():
            return candidate
    log.warning("File %s not found; checked %s", filename, [str(p) for p in search_paths(filename)])
    return None


def is_valid_mp4(path: Path) -> bool:
    try:
        with open(path, "rb") as fh:
            head = fh.read(12)
    except OSError as e:
        log.error("Could not read %s: %s", path, e)
        return False
    return any(marker in head for marker, _ in MP4_SIGNATURES)


def sanitize_filename(title: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("", title or "")
    cleaned = re.sub(r"\s+", "-", cleaned)
    cleaned = re.sub(r"\.+", ".", cleaned)
    return cleaned.strip()[:100] or "video"


def download_filename(title: str, quality: str) -> str:
    return f"{sanitize_filename(title)}-{quality}.mp4"


def content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "ignore").decode() or "video.mp4"
    ascii_name = ascii_name.replace('"', "")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """
    Single byte range from a Range header as inclusive (start, end).
    None means "send the whole file". Multi-range requests get the whole file.
    """
    if not header:
        return None
    m = re.fullmatch(r"\s*bytes=(\d*)-(\d*)\s*", header)
    if not m:
        return None
    first, last = m.groups()
    if not first and not last:
        return None
    if not first:
        # suffix range: last N bytes
        length = int(last)
        if length == 0:
            raise RangeNotSatisfiable(header)
        return max(0, size - length), size - 1
    start = int(first)
    end = int(last) if last else size - 1
    if start >= size or end < start:
        raise RangeNotSatisfiable(header)
    return start, min(end, size - 1)


def iter_file(path: Path, start: int = 0, end: Optional[int] = None) -> Iterator[bytes]:
    with open(path, "rb") as fh:
        fh.seek(start)
        remaining = None if end is None else end - start + 1
        while remaining is None or remaining > 0:
            chunk = fh.read(CHUNK_SIZE if remaining is None else min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            if remaining is not None:
                remaining -= len(chunk)
            yield chunk
