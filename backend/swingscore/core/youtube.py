import re
from typing import Optional

# Tried in order; the first capture group is the video id
_VIDEO_ID_PATTERNS = [
    re.compile(
        r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/|youtube\.com/watch\?.*v=)"
        r"([^#&?]*)"
    ),
    re.compile(r"youtube\.com/shorts/([^#&?]*)"),
    re.compile(r"youtube\.com/live/([^#&?]*)"),
]


def extract_youtube_video_id(url: Optional[str]) -> Optional[str]:
    """Video id from a watch, youtu.be, embed, v, shorts or live URL; None otherwise."""
    if not url:
        return None
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match and match.group(1):
            return match.group(1)
    return None


def embed_url(video_id: str) -> str:
    return f"https://www.youtube.com/embed/{video_id}"


def short_url(video_id: str) -> str:
    return f"https://youtu.be/{video_id}"
