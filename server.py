import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP

from generation_client import GenerationClient
from managers.asset_aggregator import AssetAggregator
from managers.batch_dispatcher import BatchDispatcher
from managers.order_store import JsonFileKeyValueStore, OrderStore
from managers.sequence_editor import SequenceEditor
from managers.sequence_library import SequenceLibrary
from managers.settings_manager import SettingsManager
from models.order import FinalSequence
from tools import (
    register_batch_tools,
    register_configuration_tools,
    register_producer_tools,
    register_sequence_tools,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("MCP_Server")


class AppContext:
    def __init__(self, aggregator: AssetAggregator, dispatcher: BatchDispatcher):
        self.aggregator = aggregator
        self.dispatcher = dispatcher


def _log_final_sequence(final_sequence: FinalSequence):
    logger.info(
        "Final sequence updated: %s items (%s videos, %s images/animations)",
        len(final_sequence.entries),
        len(final_sequence.video_ids),
        len(final_sequence.image_order),
    )


def create_server(settings_manager: Optional[SettingsManager] = None) -> FastMCP:
    """Wire managers and tools into a FastMCP server"""
    settings_manager = settings_manager or SettingsManager()

    kv_store = JsonFileKeyValueStore(settings_manager.get("store_path"))
    aggregator = AssetAggregator(OrderStore(kv_store))
    aggregator.subscribe(_log_final_sequence)
    editor = SequenceEditor(aggregator)
    library = SequenceLibrary(kv_store)
    client = GenerationClient(
        settings_manager.get("generation_url"),
        timeout=settings_manager.get("request_timeout_seconds"),
    )
    dispatcher = BatchDispatcher(
        client,
        aggregator,
        request_timeout=settings_manager.get("request_timeout_seconds"),
    )

    @asynccontextmanager
    async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
        """Manage application lifecycle"""
        logger.info("Starting MCP server lifecycle...")
        logger.info(
            "Generation endpoint: %s, store: %s",
            client.endpoint_url,
            kv_store.path,
        )
        try:
            yield AppContext(aggregator=aggregator, dispatcher=dispatcher)
        finally:
            logger.info("Shutting down MCP server")

    mcp = FastMCP("Mixed_Content_Sequencer", lifespan=app_lifespan)

    register_producer_tools(mcp, aggregator)
    register_sequence_tools(mcp, editor, library)
    register_batch_tools(mcp, dispatcher)
    register_configuration_tools(mcp, settings_manager)

    return mcp


if __name__ == "__main__":
    create_server().run(transport="streamable-http")
