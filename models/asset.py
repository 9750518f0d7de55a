"""Asset data models"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional

ASSET_KINDS = ("animation", "image", "video")


def animation_asset_id(set_id: str, index: int) -> str:
    return f"animation-{set_id}-{index}"


def image_asset_id(set_id: str, index: int) -> str:
    return f"image-{set_id}-{index}"


def video_asset_id(video_id: str) -> str:
    return f"video-{video_id}"


@dataclass(frozen=True)
class Asset:
    """One generated artifact in the mixed content sequence.

    ``id`` is assigned once when the asset is built and is never parsed back
    apart; the ``source_*`` fields carry the producer references instead.
    """
    id: str
    kind: str
    title: str
    url: str
    source_label: str
    order: int = 0
    thumbnail_url: Optional[str] = None
    duration_seconds: Optional[float] = None
    source_set_id: Optional[str] = None  # image sets (animation + image kinds)
    source_index: Optional[int] = None
    source_video_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now, compare=False)

    def __post_init__(self):
        if self.kind not in ASSET_KINDS:
            raise ValueError(f"Invalid asset kind: {self.kind}. Must be one of {ASSET_KINDS}")

    @property
    def thumbnail(self) -> str:
        return self.thumbnail_url or self.url

    @property
    def source_ref(self) -> Optional[str]:
        """Reference understood by the video assembly step"""
        if self.kind == "video":
            return self.source_video_id
        if self.source_set_id is None or self.source_index is None:
            return None
        return f"{self.source_set_id}:{self.source_index}"

    def with_order(self, order: int) -> "Asset":
        if order == self.order:
            return self
        return replace(self, order=order)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "url": self.url,
            "thumbnail_url": self.thumbnail,
            "duration_seconds": self.duration_seconds,
            "order": self.order,
            "source_label": self.source_label,
        }
