"""Named sequence library kept in the key/value store"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from managers.order_store import KeyValueStore
from models.asset import Asset
from models.order import StoredSequence

logger = logging.getLogger("MCP_Server")

STORED_SEQUENCES_KEY = "stored-mixed-content-sequences"
MAX_STORED_SEQUENCES = 20


class SequenceLibrary:
    """Most-recent-first list of saved arrangements, capped at MAX_STORED_SEQUENCES"""

    def __init__(self, kv_store: KeyValueStore, max_sequences: int = MAX_STORED_SEQUENCES):
        self.kv_store = kv_store
        self.max_sequences = max_sequences

    def _load(self) -> List[StoredSequence]:
        try:
            raw = self.kv_store.get(STORED_SEQUENCES_KEY)
            if not raw:
                return []
            data = json.loads(raw)
            return [StoredSequence.from_dict(item) for item in data]
        except Exception as e:
            logger.warning(f"Failed to load stored sequences: {e}")
            return []

    def _store(self, sequences: List[StoredSequence]) -> bool:
        try:
            self.kv_store.set(
                STORED_SEQUENCES_KEY,
                json.dumps([sequence.to_dict() for sequence in sequences]),
            )
            return True
        except Exception as e:
            logger.warning(f"Failed to store sequences: {e}")
            return False

    def save_sequence(
        self,
        assets: Sequence[Asset],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> str:
        """Save an arrangement; returns its id, or "" when the write failed"""
        now = datetime.now()
        items = []
        for asset in assets:
            item: Dict[str, Any] = asset.to_dict()
            item["thumbnail_url"] = asset.thumbnail_url
            items.append(item)

        sequence = StoredSequence(
            id=str(uuid.uuid4()),
            name=name or f"Mixed Content {now.strftime('%Y-%m-%d')}",
            description=description,
            items=items,
            created_at=now.isoformat(),
            total_items=len(assets),
            total_images=sum(1 for asset in assets if asset.kind in ("image", "animation")),
            total_videos=sum(1 for asset in assets if asset.kind == "video"),
            total_animations=sum(1 for asset in assets if asset.kind == "animation"),
        )

        sequences = [sequence] + self._load()
        if not self._store(sequences[:self.max_sequences]):
            return ""
        logger.info(f"Saved mixed content sequence {sequence.id} ({len(assets)} items)")
        return sequence.id

    def list_sequences(self) -> List[StoredSequence]:
        return self._load()

    def get_sequence(self, sequence_id: str) -> Optional[StoredSequence]:
        for sequence in self._load():
            if sequence.id == sequence_id:
                return sequence
        return None

    def update_sequence(
        self,
        sequence_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> bool:
        sequences = self._load()
        for sequence in sequences:
            if sequence.id == sequence_id:
                if name is not None:
                    sequence.name = name
                if description is not None:
                    sequence.description = description
                return self._store(sequences)
        return False

    def delete_sequence(self, sequence_id: str) -> bool:
        sequences = self._load()
        remaining = [sequence for sequence in sequences if sequence.id != sequence_id]
        if len(remaining) == len(sequences):
            return False
        if not self._store(remaining):
            return False
        logger.info(f"Deleted mixed content sequence {sequence_id}")
        return True

    def clear_sequences(self) -> bool:
        try:
            self.kv_store.remove(STORED_SEQUENCES_KEY)
        except Exception as e:
            logger.warning(f"Failed to clear stored sequences: {e}")
            return False
        return True
