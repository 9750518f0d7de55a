"""Shared helper functions for tool implementations"""

import base64
import binascii
import logging
from typing import Any, Dict, List, Optional, Sequence

from asset_processor import load_reference_asset
from models.generation import GenerationRequest, ReferenceAsset
from models.producer import GeneratedVideo, ImageSet

logger = logging.getLogger("MCP_Server")


def parse_image_sets(raw_sets: Sequence[Dict[str, Any]]) -> List[ImageSet]:
    """Build ImageSets from tool input.

    Accepts both snake_case and the camelCase keys used by the dashboard
    (``imageUrls``, ``finalPrompts``, ``originalPrompt``).
    """
    image_sets = []
    for raw in raw_sets:
        image_sets.append(ImageSet(
            id=str(raw["id"]),
            image_urls=list(raw.get("image_urls", raw.get("imageUrls", []))),
            final_prompts=list(raw.get("final_prompts", raw.get("finalPrompts", [])) or []),
            original_prompt=raw.get("original_prompt", raw.get("originalPrompt")),
            image_ids=list(raw.get("image_ids", raw.get("imageIds", [])) or []),
        ))
    return image_sets


def parse_videos(raw_videos: Sequence[Dict[str, Any]]) -> List[GeneratedVideo]:
    videos = []
    for raw in raw_videos:
        duration = raw.get("duration")
        videos.append(GeneratedVideo(
            id=str(raw["id"]),
            video_url=raw.get("video_url", raw.get("videoUrl")),
            prompt=raw.get("prompt"),
            duration=float(duration) if duration is not None else None,
        ))
    return videos


def parse_requests(raw_requests: Sequence[Dict[str, Any]]) -> List[GenerationRequest]:
    requests = []
    for index, raw in enumerate(raw_requests):
        prompt = raw.get("prompt")
        if not prompt:
            raise ValueError(f"Request {index} is missing a prompt")
        request_id = str(raw.get("id") or f"prompt-{index}")
        requests.append(GenerationRequest(
            id=request_id,
            title=raw.get("title") or request_id,
            prompt=prompt,
        ))
    return requests


def load_reference_assets(
    sources: Optional[Sequence[str]] = None,
    encoded: Optional[Sequence[Dict[str, str]]] = None,
) -> List[ReferenceAsset]:
    """Load reference assets from paths/URLs and base64 payloads.

    ``encoded`` items look like ``{"name": "ref.png", "data": "<base64>"}``.
    """
    assets = [load_reference_asset(source) for source in (sources or [])]
    for index, item in enumerate(encoded or []):
        try:
            data = base64.b64decode(item["data"], validate=True)
        except (KeyError, binascii.Error) as e:
            raise ValueError(f"Reference asset {index} has invalid base64 data: {e}")
        assets.append(load_reference_asset(data, name=item.get("name") or f"reference{index}.png"))
    return assets


def sequence_response(assets, aggregator, **extra) -> Dict[str, Any]:
    """Standard tool response describing the current sequence"""
    response = {
        "items": [asset.to_dict() for asset in assets],
        "counts": aggregator.counts(),
        "has_custom_order": aggregator.has_custom_order,
    }
    response.update(extra)
    return response
