"""Sequence editor: reorder, remove and bulk operations on the mixed content list"""

import logging
import random
from typing import List, Optional, Tuple

from managers.asset_aggregator import AssetAggregator
from models.asset import ASSET_KINDS, Asset

logger = logging.getLogger("MCP_Server")


class SequenceEditor:
    """User-facing edits on top of the aggregator's live list.

    Removing a single asset is staged: the first ``remove`` call arms it,
    a second call for the same id (or ``confirm_removal``) executes it. Only
    one removal can be armed; arming another id replaces it, and any other
    editor operation disarms it.
    """

    def __init__(self, aggregator: AssetAggregator, rng: Optional[random.Random] = None):
        self.aggregator = aggregator
        self._rng = rng or random.Random()
        self._pending_removal: Optional[str] = None

    @property
    def pending_removal(self) -> Optional[str]:
        return self._pending_removal

    @property
    def assets(self) -> Tuple[Asset, ...]:
        return self.aggregator.assets

    def _disarm(self):
        if self._pending_removal is not None:
            logger.debug(f"Cancelled pending removal of {self._pending_removal}")
        self._pending_removal = None

    def move_up(self, index: int) -> bool:
        self._disarm()
        if index <= 0 or index >= len(self.assets):
            return False
        return self._reorder(index, index - 1)

    def move_down(self, index: int) -> bool:
        self._disarm()
        if index < 0 or index >= len(self.assets) - 1:
            return False
        return self._reorder(index, index + 1)

    def reorder(self, from_index: int, to_index: int) -> bool:
        """Drag-and-drop move; out-of-range or equal indices change nothing"""
        self._disarm()
        return self._reorder(from_index, to_index)

    def _reorder(self, from_index: int, to_index: int) -> bool:
        def operation(assets: List[Asset]):
            size = len(assets)
            if not (0 <= from_index < size and 0 <= to_index < size) or from_index == to_index:
                return None
            moved = assets.pop(from_index)
            assets.insert(to_index, moved)
            return assets

        updated = self.aggregator.edit(operation)
        if updated is None:
            return False
        logger.debug(f"Moved asset from position {from_index} to {to_index}")
        return True

    def remove(self, asset_id: str) -> bool:
        """Arm or execute the removal of one asset.

        Returns True only when the asset was actually removed.
        """
        if self._pending_removal == asset_id:
            return self.confirm_removal()

        if not any(asset.id == asset_id for asset in self.assets):
            logger.warning(f"Cannot remove unknown asset {asset_id}")
            self._disarm()
            return False

        self._pending_removal = asset_id
        logger.debug(f"Removal of {asset_id} armed; awaiting confirmation")
        return False

    def confirm_removal(self) -> bool:
        asset_id = self._pending_removal
        self._pending_removal = None
        if asset_id is None:
            return False

        def operation(assets: List[Asset]):
            remaining = [asset for asset in assets if asset.id != asset_id]
            if len(remaining) == len(assets):
                return None
            return remaining

        removed = self.aggregator.edit(operation) is not None
        if removed:
            logger.info(f"Removed asset {asset_id} from the sequence")
        return removed

    def cancel_removal(self):
        self._disarm()

    def remove_by_kind(self, kind: str) -> int:
        """Drop every asset of one kind without confirmation; returns how many"""
        self._disarm()
        if kind not in ASSET_KINDS:
            raise ValueError(f"Invalid asset kind: {kind}. Must be one of {ASSET_KINDS}")

        removed_count = 0

        def operation(assets: List[Asset]):
            nonlocal removed_count
            remaining = [asset for asset in assets if asset.kind != kind]
            removed_count = len(assets) - len(remaining)
            return remaining

        self.aggregator.edit(operation)
        logger.info(f"Removed {removed_count} {kind} assets from the sequence")
        return removed_count

    def clear_all(self):
        """Empty the sequence, delete the stored override and reset downstream selection"""
        self._disarm()
        self.aggregator.clear()

    def shuffle(self) -> Tuple[Asset, ...]:
        """Uniform random order, published downstream but not persisted"""
        self._disarm()

        def operation(assets: List[Asset]):
            self._rng.shuffle(assets)
            return assets

        return self.aggregator.edit(operation, persist=False)
