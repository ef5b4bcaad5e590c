import re
from typing import List
from urllib.parse import unquote

import config

_SEGMENT_RE = re.compile(r"[A-Za-z0-9._-]+")
_SEPARATOR_RE = re.compile(r"[\\/]")


def split_segments(path: str) -> List[str]:
    """Split a path on both slashes and backslashes, dropping empty parts."""
    return [part for part in _SEPARATOR_RE.split(path) if part != ""]


def is_safe_segment(segment: str) -> bool:
    if segment in (".", "..") or "\0" in segment:
        return False
    if segment == config.RESERVED_DIR_NAME:
        return False
    if len(segment) > config.MAX_SEGMENT_LENGTH:
        return False
    return bool(_SEGMENT_RE.fullmatch(segment))


def is_safe_path(path: str) -> bool:
    """Check that a request path is a canonical relative path under the storage root.

    The path arrives already percent-decoded once by the HTTP layer; decoding it
    again must not change it, otherwise it was double encoded.
    """
    if not isinstance(path, str):
        return False

    if unquote(path) != path:
        return False

    # Must start with a slash and not contain two consecutive slashes
    if not path.startswith("/"):
        return False
    if "//" in path:
        return False

    # One spelling per stored file: no trailing slash, no backslash separators
    if path.endswith("/") or "\\" in path:
        return False

    segments = split_segments(path)
    if len(segments) == 0 or len(segments) > config.MAX_PATH_SEGMENTS:
        return False

    return all(is_safe_segment(segment) for segment in segments)
