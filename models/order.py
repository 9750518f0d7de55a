"""Ordering models: persisted custom order, downstream sequence, saved sequences"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from models.asset import Asset

MILLIS_PER_HOUR = 60 * 60 * 1000


@dataclass(frozen=True)
class CustomOrder:
    """User-chosen order override, stored as ``{"items": [...], "timestamp": ms}``"""
    entries: Tuple[Tuple[str, int], ...]
    saved_at_epoch_millis: int

    @classmethod
    def from_assets(cls, assets: Sequence[Asset], saved_at_epoch_millis: int) -> "CustomOrder":
        return cls(
            entries=tuple((asset.id, asset.order) for asset in assets),
            saved_at_epoch_millis=saved_at_epoch_millis,
        )

    def as_mapping(self) -> Dict[str, int]:
        return dict(self.entries)

    def is_expired(self, now_epoch_millis: int, ttl_hours: int) -> bool:
        return now_epoch_millis - self.saved_at_epoch_millis >= ttl_hours * MILLIS_PER_HOUR

    def to_json(self) -> str:
        return json.dumps({
            "items": [{"id": asset_id, "order": order} for asset_id, order in self.entries],
            "timestamp": self.saved_at_epoch_millis,
        })

    @classmethod
    def from_json(cls, raw: str) -> "CustomOrder":
        """Parse a stored override; raises ValueError on any malformed payload"""
        try:
            payload = json.loads(raw)
            entries = tuple((str(item["id"]), int(item["order"])) for item in payload["items"])
            timestamp = int(payload["timestamp"])
        except (TypeError, KeyError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed custom order: {e}")
        return cls(entries=entries, saved_at_epoch_millis=timestamp)


@dataclass(frozen=True)
class SequenceEntry:
    id: str
    kind: str
    order: int
    source_ref: Optional[str] = None


@dataclass(frozen=True)
class FinalSequence:
    """Arrangement pushed to the video assembly step after every edit"""
    entries: Tuple[SequenceEntry, ...] = ()

    @classmethod
    def from_assets(cls, assets: Sequence[Asset]) -> "FinalSequence":
        return cls(entries=tuple(
            SequenceEntry(id=asset.id, kind=asset.kind, order=asset.order, source_ref=asset.source_ref)
            for asset in assets
        ))

    @property
    def video_ids(self) -> List[str]:
        return [entry.source_ref for entry in self.entries if entry.kind == "video" and entry.source_ref]

    @property
    def image_order(self) -> List[str]:
        return [entry.source_ref for entry in self.entries if entry.kind != "video" and entry.source_ref]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [
                {"id": entry.id, "kind": entry.kind, "order": entry.order}
                for entry in self.entries
            ],
            "video_ids": self.video_ids,
            "image_order": self.image_order,
        }


@dataclass
class StoredSequence:
    """Named snapshot of an arrangement kept in the sequence library"""
    id: str
    name: str
    items: List[Dict[str, Any]]
    created_at: str
    description: Optional[str] = None
    total_items: int = 0
    total_images: int = 0
    total_videos: int = 0
    total_animations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "items": self.items,
            "createdAt": self.created_at,
            "totalItems": self.total_items,
            "totalImages": self.total_images,
            "totalVideos": self.total_videos,
            "totalAnimations": self.total_animations,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredSequence":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description"),
            items=list(data.get("items", [])),
            created_at=data.get("createdAt", ""),
            total_items=data.get("totalItems", 0),
            total_images=data.get("totalImages", 0),
            total_videos=data.get("totalVideos", 0),
            total_animations=data.get("totalAnimations", 0),
        )
