"""Producer state snapshots read by the asset aggregator"""

from dataclasses import dataclass, field
from typing import List, Optional

from models.asset import animation_asset_id, image_asset_id

ANIMATION_RESULTS_SET_ID = "all-animation-results"

ANIMATION_SOURCE_LABEL = "Animation Generator"
IMAGE_SOURCE_LABEL = "Image Generator"
VIDEO_BATCH_SOURCE_LABEL = "Text/Image to Video Generator"
VIDEO_HISTORY_SOURCE_LABEL = "Video History"


@dataclass
class ImageSet:
    id: str
    image_urls: List[str] = field(default_factory=list)
    final_prompts: List[str] = field(default_factory=list)
    original_prompt: Optional[str] = None
    image_ids: List[str] = field(default_factory=list)  # explicit ids, index-aligned

    @property
    def is_animation_results(self) -> bool:
        return self.id == ANIMATION_RESULTS_SET_ID

    def asset_id_at(self, index: int) -> str:
        if index < len(self.image_ids) and self.image_ids[index]:
            return self.image_ids[index]
        if self.is_animation_results:
            return animation_asset_id(self.id, index)
        return image_asset_id(self.id, index)

    def title_at(self, index: int, fallback: str) -> str:
        if index < len(self.final_prompts) and self.final_prompts[index]:
            return self.final_prompts[index]
        return self.original_prompt or fallback


@dataclass
class GeneratedVideo:
    id: str
    video_url: Optional[str] = None
    prompt: Optional[str] = None
    duration: Optional[float] = None


@dataclass
class ProducerSnapshot:
    """Current outputs of every producer feeding the sequence"""
    image_sets: List[ImageSet] = field(default_factory=list)
    selected_animation_ids: List[str] = field(default_factory=list)
    video_batch: List[GeneratedVideo] = field(default_factory=list)
    video_history: List[GeneratedVideo] = field(default_factory=list)

    def animation_set(self) -> Optional[ImageSet]:
        for image_set in self.image_sets:
            if image_set.is_animation_results:
                return image_set
        return None
