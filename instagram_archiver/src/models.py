"""
Content records - normalized views over captured Instagram JSON
The raw JSON is kept on every record because it is what gets persisted to disk.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


def dig(data: Any, *path: Any, default: Any = None) -> Any:
    """
    Walk a JSON tree along path (dict keys or list indexes).
    Returns default as soon as a step does not match the shape of the node.
    """
    for step in path:
        if isinstance(step, int):
            if isinstance(data, list) and -len(data) <= step < len(data):
                data = data[step]
            else:
                return default
        elif isinstance(data, dict) and step in data:
            data = data[step]
        else:
            return default
    return data


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _urls(versions: Any) -> List[str]:
    return [v["url"] for v in _as_list(versions) if isinstance(v, dict) and isinstance(v.get("url"), str)]


class TargetKind(str, Enum):
    PROFILE = "profile"
    MEDIA = "media"
    STORIES = "stories"
    HIGHLIGHT = "highlight"


class Target(BaseModel):
    """A normalized reference to archive"""
    url: str
    kind: TargetKind
    identifier: str = Field(description="Username, media code or numeric highlight id")


class UserProfile(BaseModel):
    id: Optional[str] = None
    username: str
    full_name: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "UserProfile":
        user_id = data.get("id") or data.get("pk")
        return cls(
            id=str(user_id) if user_id is not None else None,
            username=data.get("username") or "",
            full_name=data.get("full_name"),
            raw=data,
        )


class HighlightSummary(BaseModel):
    id: str = Field(description="Full highlight id, e.g. highlight:17900000000000000")
    title: Optional[str] = None
    url: str
    thumbnail: Optional[str] = None
    owner: Optional[str] = None

    @property
    def numeric_id(self) -> str:
        return self.id.split(":", 1)[-1]

    @classmethod
    def from_node(cls, node: Dict[str, Any], base_url: str) -> "HighlightSummary":
        highlight_id = str(node.get("id", ""))
        if not highlight_id.startswith("highlight:"):
            highlight_id = f"highlight:{highlight_id}"
        numeric_id = highlight_id.split(":", 1)[1]
        return cls(
            id=highlight_id,
            title=node.get("title"),
            url=f"{base_url}stories/highlights/{numeric_id}/",
            thumbnail=dig(node, "cover_media", "cropped_image_version", "url"),
            owner=dig(node, "user", "username"),
        )


class MediaItem(BaseModel):
    """One story frame, post, reel or carousel child"""
    code: Optional[str] = None
    taken_at: Optional[float] = None
    video_urls: List[str] = Field(default_factory=list)
    image_urls: List[str] = Field(default_factory=list)
    carousel: List[MediaItem] = Field(default_factory=list)
    caption: Optional[str] = None
    story_media_codes: List[str] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "MediaItem":
        caption = data.get("caption")
        if isinstance(caption, dict):
            caption = caption.get("text")
        taken_at = data.get("taken_at")
        story_codes = []
        for entry in _as_list(data.get("story_feed_media")):
            code = _as_dict(entry).get("media_code")
            if isinstance(code, str) and code:
                story_codes.append(code)
        return cls(
            code=data.get("code"),
            taken_at=float(taken_at) if isinstance(taken_at, (int, float)) else None,
            video_urls=_urls(data.get("video_versions")),
            image_urls=_urls(dig(data, "image_versions2", "candidates")),
            carousel=[cls.from_json(child) for child in _as_list(data.get("carousel_media")) if isinstance(child, dict)],
            caption=caption if isinstance(caption, str) else None,
            story_media_codes=story_codes,
            raw=data,
        )

    def best_asset(self) -> Optional[Tuple[str, bool]]:
        """(url, is_video) for the first video version, else the first image version"""
        if self.video_urls:
            return self.video_urls[0], True
        if self.image_urls:
            return self.image_urls[0], False
        return None


class ReelDetail(BaseModel):
    """A highlight or a user's story reel with its ordered items"""
    id: Optional[str] = None
    title: Optional[str] = None
    username: Optional[str] = None
    items: List[MediaItem] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ReelDetail":
        reel_id = data.get("id")
        return cls(
            id=str(reel_id) if reel_id is not None else None,
            title=data.get("title"),
            username=dig(data, "user", "username"),
            items=[MediaItem.from_json(item) for item in _as_list(data.get("items")) if isinstance(item, dict)],
            raw=data,
        )


MediaItem.model_rebuild()
