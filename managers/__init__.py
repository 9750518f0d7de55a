"""Manager classes for the Mixed Content Sequencer"""

from managers.asset_aggregator import AssetAggregator
from managers.batch_dispatcher import BatchDispatcher
from managers.order_store import JsonFileKeyValueStore, MemoryKeyValueStore, OrderStore
from managers.sequence_editor import SequenceEditor
from managers.sequence_library import SequenceLibrary
from managers.settings_manager import SettingsManager

__all__ = [
    "AssetAggregator",
    "BatchDispatcher",
    "JsonFileKeyValueStore",
    "MemoryKeyValueStore",
    "OrderStore",
    "SequenceEditor",
    "SequenceLibrary",
    "SettingsManager",
]
