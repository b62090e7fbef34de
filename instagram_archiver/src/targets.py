"""
Target normalization
Turns user-supplied references (@user, user, highlight:<id>, Instagram URLs)
into a canonical URL and a target kind.
"""

from typing import List, Tuple
from urllib.parse import urlparse

from .config import INSTAGRAM_BASE_URL
from .error_handler import InvalidTargetError
from .models import Target, TargetKind

HIGHLIGHT_PREFIX = "highlight:"
ACCEPTED_HOSTS = {"www.instagram.com", "instagram.com"}


def highlight_url(highlight_id: str, base_url: str = INSTAGRAM_BASE_URL) -> str:
    return f"{base_url}stories/highlights/{highlight_id}/"


def profile_url(username: str, base_url: str = INSTAGRAM_BASE_URL) -> str:
    return f"{base_url}{username}/"


def stories_url(username: str, base_url: str = INSTAGRAM_BASE_URL) -> str:
    return f"{base_url}stories/{username}/"


def media_url(code: str, base_url: str = INSTAGRAM_BASE_URL) -> str:
    return f"{base_url}p/{code}/"


def _classify(segments: List[str]) -> Tuple[TargetKind, str]:
    if len(segments) >= 3 and segments[0] == "stories" and segments[1] == "highlights":
        return TargetKind.HIGHLIGHT, segments[2]
    if len(segments) >= 2 and segments[0] == "stories":
        return TargetKind.STORIES, segments[1]
    if len(segments) == 1:
        return TargetKind.PROFILE, segments[0]
    return TargetKind.MEDIA, segments[-1]


def normalize_target(reference: str, base_url: str = INSTAGRAM_BASE_URL) -> Target:
    """
    Normalize a reference to a Target.
    Raises InvalidTargetError for empty references and URLs outside Instagram.
    """
    reference = (reference or "").strip()
    if reference.startswith("@"):
        reference = reference[1:]
    if not reference:
        raise InvalidTargetError("Empty target reference")

    if reference.startswith(HIGHLIGHT_PREFIX):
        highlight_id = reference[len(HIGHLIGHT_PREFIX):].strip("/")
        if not highlight_id:
            raise InvalidTargetError(f"Missing highlight id in {reference!r}")
        url = highlight_url(highlight_id, base_url)
    elif "://" in reference:
        url = reference
    else:
        url = base_url + reference.strip("/") + "/"

    parsed = urlparse(url)
    base = urlparse(base_url)
    if parsed.scheme != "https" or parsed.netloc not in ACCEPTED_HOSTS | {base.netloc}:
        raise InvalidTargetError(f"Invalid URL format, not an Instagram URL: {reference}")

    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        raise InvalidTargetError(f"URL has no path to archive: {reference}")

    kind, identifier = _classify(segments)
    return Target(url=base_url + "/".join(segments) + "/", kind=kind, identifier=identifier)
