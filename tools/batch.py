"""Batch generation tools for the Mixed Content Sequencer"""

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from asset_processor import get_image_metadata
from errors import ValidationError
from managers.batch_dispatcher import BatchDispatcher
from models.generation import COOLDOWN_SECONDS, GROUP_SIZE
from tools.helpers import load_reference_assets, parse_requests

logger = logging.getLogger("MCP_Server")


def register_batch_tools(
    mcp: FastMCP,
    dispatcher: BatchDispatcher
):
    """Register batch generation tools with the MCP server"""

    @mcp.tool()
    async def start_batch(
        prompts: List[Dict[str, Any]],
        reference_images: Optional[List[str]] = None,
        reference_images_base64: Optional[List[Dict[str, str]]] = None,
    ) -> dict:
        """Start generating images for many prompts in the background.

        Prompts are sent in groups of 10 with a 60 second pause between groups
        to stay within the provider's rate limit. Poll get_batch_status for
        progress; finished results are appended to the sequence.

        Args:
            prompts: List of {"id", "title", "prompt"} dicts (id/title optional).
            reference_images: Paths or URLs of conditioning images.
            reference_images_base64: Conditioning images as {"name", "data"} with base64 data.

        Returns:
            The run id and initial status plus the size and format of each
            reference image, or an error if validation failed.
        """
        try:
            requests = parse_requests(prompts)
            reference_assets = load_reference_assets(reference_images, reference_images_base64)
            batch_run = dispatcher.start(requests, reference_assets)
        except (ValidationError, ValueError, FileNotFoundError) as exc:
            return {"error": str(exc)}
        except Exception as exc:
            logger.exception("Failed to start batch generation")
            return {"error": str(exc)}

        return {
            "run_id": batch_run.run_id,
            "status": batch_run.status,
            "total_count": batch_run.total_count,
            "total_groups": batch_run.total_groups,
            "group_size": GROUP_SIZE,
            "cooldown_seconds": COOLDOWN_SECONDS,
            "reference_images": [
                {"name": asset.name, **get_image_metadata(asset.data)}
                for asset in reference_assets
            ],
        }

    @mcp.tool()
    def get_batch_status(run_id: Optional[str] = None) -> dict:
        """Get progress of a batch run, or a summary of all runs when run_id is omitted."""
        if run_id is None:
            runs = dispatcher.list_runs()
            return {
                "runs": [
                    {
                        "run_id": run.run_id,
                        "status": run.status,
                        "completed_count": run.completed_count,
                        "total_count": run.total_count,
                    }
                    for run in runs
                ],
                "count": len(runs),
            }
        batch_run = dispatcher.get_run(run_id)
        if batch_run is None:
            return {"error": f"Batch {run_id} not found"}
        return batch_run.to_dict()

    @mcp.tool()
    def cancel_batch(run_id: str) -> dict:
        """Stop a running batch before its next group; results so far are kept."""
        if not dispatcher.cancel(run_id):
            return {"error": f"Batch {run_id} is not running"}
        return {"success": True, "run_id": run_id}

    @mcp.tool()
    async def regenerate_result(
        asset_id: str,
        prompt: Optional[str] = None,
        reference_images: Optional[List[str]] = None,
        reference_images_base64: Optional[List[Dict[str, str]]] = None,
    ) -> dict:
        """Regenerate one image or animation in place, keeping its position.

        Args:
            asset_id: Id of the sequence item to regenerate.
            prompt: Prompt to use; defaults to the item's title.
            reference_images: Paths or URLs of conditioning images.
            reference_images_base64: Conditioning images as {"name", "data"} with base64 data.
        """
        try:
            reference_assets = load_reference_assets(reference_images, reference_images_base64)
            asset = await dispatcher.regenerate(asset_id, prompt or "", reference_assets)
        except (ValidationError, ValueError, FileNotFoundError) as exc:
            return {"error": str(exc)}
        except Exception as exc:
            logger.exception("Failed to regenerate asset %s", asset_id)
            return {"error": str(exc)}
        return {"success": True, "asset": asset.to_dict()}
