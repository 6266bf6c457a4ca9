"""
Media source resolution.

Turns a stored image or video record into the reference handed to the
content-analysis provider. Pure functions, no I/O.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from portfolio_ai.core.exceptions import MediaSourceException
from portfolio_ai.models import Image, MediaKind, Video

VIMEO_URL = "https://vimeo.com/{id}"
YOUTUBE_URL = "https://www.youtube.com/watch?v={id}"
YOUTUBE_POSTER_URL = "https://img.youtube.com/vi/{id}/hqdefault.jpg"


@dataclass(frozen=True)
class MediaSource:
    """Provider-facing reference for one media item."""
    kind: MediaKind
    url: str
    platform: str = "direct"  # direct, vimeo, youtube
    preview_url: Optional[str] = None
    media_id: Optional[int] = None


def is_http_url(value: Optional[str]) -> bool:
    if not value or not isinstance(value, str):
        return False
    return value.startswith("http://") or value.startswith("https://")


def pick_largest_resolution(resolutions: Optional[Dict[str, str]]) -> Optional[str]:
    """URL under the largest numeric width key, ignoring non-numeric keys and non-http values."""
    best_width = None
    best_url = None
    for key, url in (resolutions or {}).items():
        try:
            width = int(key)
        except (TypeError, ValueError):
            continue
        if not is_http_url(url):
            continue
        if best_width is None or width > best_width:
            best_width, best_url = width, url
    return best_url


def resolve_image_source(image: Image) -> MediaSource:
    url = pick_largest_resolution(image.resolutions)
    if url is None and is_http_url(image.url):
        url = image.url
    if url is None:
        raise MediaSourceException(MediaKind.IMAGE.value, image.id, "no http(s) url or resolution")
    return MediaSource(kind=MediaKind.IMAGE, url=url, media_id=image.id)


def resolve_video_source(video: Video) -> MediaSource:
    if video.vimeo_id:
        return MediaSource(
            kind=MediaKind.VIDEO,
            url=VIMEO_URL.format(id=video.vimeo_id),
            platform="vimeo",
            media_id=video.id
        )
    if video.youtube_id:
        return MediaSource(
            kind=MediaKind.VIDEO,
            url=YOUTUBE_URL.format(id=video.youtube_id),
            platform="youtube",
            preview_url=YOUTUBE_POSTER_URL.format(id=video.youtube_id),
            media_id=video.id
        )
    if is_http_url(video.url):
        return MediaSource(kind=MediaKind.VIDEO, url=video.url, media_id=video.id)
    raise MediaSourceException(MediaKind.VIDEO.value, video.id, "no vimeo id, youtube id or http(s) url")


def resolve_source(kind: MediaKind, record) -> MediaSource:
    if kind == MediaKind.IMAGE:
        return resolve_image_source(record)
    return resolve_video_source(record)
