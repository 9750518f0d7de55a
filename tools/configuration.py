"""Configuration tools for the Mixed Content Sequencer"""

from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from models.generation import COOLDOWN_SECONDS, GROUP_SIZE
from managers.order_store import CUSTOM_ORDER_TTL_HOURS


def register_configuration_tools(
    mcp: FastMCP,
    settings_manager
):
    """Register configuration tools with the MCP server"""

    @mcp.tool()
    def get_settings() -> dict:
        """Get current effective settings and the fixed pacing limits.

        Returns merged settings from all sources (runtime, config, env, hardcoded).
        Group size, cooldown and custom order expiry are fixed and listed for reference.
        """
        return {
            "settings": settings_manager.get_all(),
            "limits": {
                "group_size": GROUP_SIZE,
                "cooldown_seconds": COOLDOWN_SECONDS,
                "custom_order_ttl_hours": CUSTOM_ORDER_TTL_HOURS,
            },
        }

    @mcp.tool()
    def set_settings(settings: Dict[str, Any], persist: bool = False) -> dict:
        """Set runtime settings.

        Args:
            settings: Dict of settings, e.g. {"generation_url": "http://host/api/generate-animation",
                "request_timeout_seconds": 120}. Changes apply after a server restart.
            persist: If True, write settings to the config file (~/.config/mixed-content-sequencer/config.json).

        Returns:
            Success status and any validation errors.
        """
        result = settings_manager.set_settings(settings)
        if "errors" in result:
            return {"success": False, "errors": result["errors"]}

        if persist:
            persist_result = settings_manager.persist_settings(settings)
            if "error" in persist_result:
                return {"success": False, "errors": [f"Failed to persist settings: {persist_result['error']}"]}

        return {"success": True, "updated": result["updated"]}
