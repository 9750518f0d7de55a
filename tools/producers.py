"""Producer snapshot tools for the Mixed Content Sequencer"""

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from managers.asset_aggregator import AssetAggregator
from tools.helpers import parse_image_sets, parse_videos, sequence_response

logger = logging.getLogger("MCP_Server")


def register_producer_tools(
    mcp: FastMCP,
    aggregator: AssetAggregator
):
    """Register producer update and listing tools with the MCP server"""

    @mcp.tool()
    def update_producers(
        image_sets: Optional[List[Dict[str, Any]]] = None,
        selected_animation_ids: Optional[List[str]] = None,
        video_batch: Optional[List[Dict[str, Any]]] = None,
        video_history: Optional[List[Dict[str, Any]]] = None,
    ) -> dict:
        """Report new producer outputs and re-collect the mixed content sequence.

        Only the arguments that are given replace the stored producer state.

        Args:
            image_sets: Image sets as {"id", "image_urls", "final_prompts", "original_prompt"}.
                The set with id "all-animation-results" holds animation results.
            selected_animation_ids: Ids of animation results chosen for the sequence
                (e.g. "animation-all-animation-results-0").
            video_batch: Current video batch as {"id", "video_url", "prompt", "duration"}.
            video_history: Previously generated videos, same shape as video_batch.

        Returns:
            The resulting ordered items with per-kind counts.
        """
        try:
            assets = aggregator.update_producers(
                image_sets=parse_image_sets(image_sets) if image_sets is not None else None,
                selected_animation_ids=selected_animation_ids,
                video_batch=parse_videos(video_batch) if video_batch is not None else None,
                video_history=parse_videos(video_history) if video_history is not None else None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.exception("Invalid producer update")
            return {"error": f"Invalid producer data: {exc}"}
        return sequence_response(assets, aggregator)

    @mcp.tool()
    def list_assets() -> dict:
        """List the mixed content sequence in its current order."""
        return sequence_response(aggregator.assets, aggregator)
