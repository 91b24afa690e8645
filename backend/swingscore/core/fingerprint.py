import hashlib
from typing import Optional

from swingscore.core.errors import InvalidReference


def video_fingerprint(name: Optional[str], size: Optional[int], last_modified_ms: Optional[int] = 0) -> str:
    """
    Identify a video file by its name, size and modification time.

    The fingerprint never depends on file bytes, so re-uploading the same file
    yields the same value.

    Raises:
        InvalidReference: name or size is missing
    """
    if not name or size is None or size < 0:
        raise InvalidReference(f"Cannot fingerprint video (name={name!r}, size={size!r})")
    key = f"{name}:{int(size)}:{int(last_modified_ms or 0)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
