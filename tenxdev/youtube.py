"""
Helpers for YouTube links attached to video content.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qs, urlparse

THUMBNAIL_TEMPLATE = "https://img.youtube.com/vi/{video_id}/hqdefault.jpg"


def extract_video_id(url: str) -> Optional[str]:
    """
    Pull the video id out of a YouTube URL.

    Supports watch (`youtube.com/watch?v=ID`), short (`youtu.be/ID`), embed
    (`youtube.com/embed/ID`) and shorts (`youtube.com/shorts/ID`) links.
    Returns None for anything else.
    """
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        return None
    if not parsed.scheme or not parsed.netloc:
        return None

    host = (parsed.hostname or "").lower()
    if host == "youtu.be":
        video_id = parsed.path.lstrip("/").split("/")[0]
        return video_id or None

    if "youtube.com" not in host:
        return None

    query = parse_qs(parsed.query)
    if query.get("v"):
        return query["v"][0] or None
    for marker in ("/embed/", "/shorts/"):
        if marker in parsed.path:
            video_id = parsed.path.split(marker, 1)[1].split("/")[0]
            return video_id or None
    return None


def thumbnail_url(video_id: str) -> str:
    return THUMBNAIL_TEMPLATE.format(video_id=video_id)
