"""Asset aggregator: one deduplicated, ordered view over every producer"""

import copy
import logging
import threading
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from managers.order_store import OrderStore
from models.asset import Asset, ASSET_KINDS, video_asset_id
from models.order import CustomOrder, FinalSequence
from models.producer import (
    ANIMATION_RESULTS_SET_ID,
    ANIMATION_SOURCE_LABEL,
    IMAGE_SOURCE_LABEL,
    VIDEO_BATCH_SOURCE_LABEL,
    VIDEO_HISTORY_SOURCE_LABEL,
    GeneratedVideo,
    ImageSet,
    ProducerSnapshot,
)

logger = logging.getLogger("MCP_Server")

SequenceListener = Callable[[FinalSequence], None]


def renumber(assets: Iterable[Asset]) -> List[Asset]:
    """Dense zero-based ``order`` following list position"""
    return [asset.with_order(index) for index, asset in enumerate(assets)]


class AssetAggregator:
    """Owns the live asset list and its persisted custom order.

    Every mutation goes through ``_lock`` so an editor action and a batch
    merge can never interleave. Readers get immutable tuples.
    """

    def __init__(self, order_store: OrderStore):
        self.order_store = order_store
        self._lock = threading.RLock()
        self._assets: Tuple[Asset, ...] = ()
        self._snapshot: Optional[ProducerSnapshot] = None
        self._has_custom_order = False
        self._listeners: List[SequenceListener] = []
        self._final_sequence = FinalSequence()

    @property
    def assets(self) -> Tuple[Asset, ...]:
        return self._assets

    @property
    def has_custom_order(self) -> bool:
        return self._has_custom_order

    @property
    def final_sequence(self) -> FinalSequence:
        return self._final_sequence

    @property
    def snapshot(self) -> ProducerSnapshot:
        with self._lock:
            return copy.deepcopy(self._snapshot) if self._snapshot else ProducerSnapshot()

    def collect(self, snapshot: ProducerSnapshot) -> List[Asset]:
        """Build the natural-order candidate list from producer outputs.

        Precedence: selected animation results, other image sets, the current
        video batch, then video history. An id seen earlier wins, so a video
        present in both the batch and the history comes from the batch.
        """
        assets: List[Asset] = []
        seen_ids = set()

        def add(asset: Asset):
            if asset.id in seen_ids:
                logger.debug(f"Skipped duplicate asset {asset.id} from {asset.source_label}")
                return
            seen_ids.add(asset.id)
            assets.append(asset.with_order(len(assets)))

        animation_set = snapshot.animation_set()
        if animation_set and snapshot.selected_animation_ids:
            selected = set(snapshot.selected_animation_ids)
            for index, url in enumerate(animation_set.image_urls):
                asset_id = animation_set.asset_id_at(index)
                if asset_id not in selected or not url:
                    continue
                add(Asset(
                    id=asset_id,
                    kind="animation",
                    title=animation_set.title_at(index, "Animation"),
                    url=url,
                    thumbnail_url=url,
                    source_label=ANIMATION_SOURCE_LABEL,
                    source_set_id=animation_set.id,
                    source_index=index,
                ))

        for image_set in snapshot.image_sets:
            if image_set.is_animation_results:
                continue
            for index, url in enumerate(image_set.image_urls):
                if not url:
                    continue
                add(Asset(
                    id=image_set.asset_id_at(index),
                    kind="image",
                    title=image_set.title_at(index, "Image from set"),
                    url=url,
                    thumbnail_url=url,
                    source_label=IMAGE_SOURCE_LABEL,
                    source_set_id=image_set.id,
                    source_index=index,
                ))

        video_sources = (
            (snapshot.video_batch, VIDEO_BATCH_SOURCE_LABEL, "Generated Video"),
            (snapshot.video_history, VIDEO_HISTORY_SOURCE_LABEL, "Historical Video"),
        )
        for videos, source_label, fallback_title in video_sources:
            for video in videos:
                if video.video_url:
                    add(self._video_asset(video, source_label, fallback_title))

        return assets

    def _video_asset(self, video: GeneratedVideo, source_label: str, fallback_title: str) -> Asset:
        return Asset(
            id=video_asset_id(video.id),
            kind="video",
            title=video.prompt or fallback_title,
            url=video.video_url,
            thumbnail_url=video.video_url,
            duration_seconds=video.duration,
            source_label=source_label,
            source_video_id=video.id,
        )

    def apply_stored_order(
        self,
        assets: Sequence[Asset],
        custom_order: Optional[CustomOrder] = None,
    ) -> List[Asset]:
        """Overlay a custom order on collected assets.

        Loads the stored override when ``custom_order`` is not given; an
        expired override is ignored either way. Assets missing from the
        override keep their collected order; the sort is stable so ties keep
        insertion sequence.
        """
        if custom_order is None:
            custom_order = self.order_store.load()
        elif custom_order.is_expired(self.order_store.now_millis(), self.order_store.ttl_hours):
            logger.debug("Ignoring custom order older than %s hours", self.order_store.ttl_hours)
            custom_order = None
        if custom_order is None:
            return list(assets)

        overrides = custom_order.as_mapping()
        reordered = [asset.with_order(overrides.get(asset.id, asset.order)) for asset in assets]
        return sorted(reordered, key=lambda asset: asset.order)

    def persist_order(self, assets: Sequence[Asset]) -> bool:
        saved = self.order_store.save(assets)
        if saved:
            self._has_custom_order = True
        return saved

    def clear_stored_order(self):
        self.order_store.clear()
        self._has_custom_order = False

    def refresh(self, snapshot: ProducerSnapshot) -> Tuple[Asset, ...]:
        """Re-collect after producer output changed.

        An identical snapshot is a plain re-render and changes nothing. When
        membership changed, or no custom order is active, the live list is
        rebuilt; otherwise the user's in-memory arrangement is kept.
        """
        with self._lock:
            if self._snapshot is not None and snapshot == self._snapshot:
                return self._assets
            self._snapshot = copy.deepcopy(snapshot)

            collected = self.collect(snapshot)
            custom_order = self.order_store.load()
            final_assets = self.apply_stored_order(collected, custom_order) if custom_order else collected

            current_ids = {asset.id for asset in self._assets}
            items_changed = (
                len(final_assets) != len(self._assets)
                or any(asset.id not in current_ids for asset in final_assets)
            )
            if items_changed or not self._has_custom_order:
                self._assets = tuple(renumber(final_assets))
                self._has_custom_order = custom_order is not None
                self._publish()
                logger.info(
                    "Collected %s assets (custom order %s)",
                    len(self._assets),
                    "applied" if custom_order else "absent",
                )
            else:
                logger.debug("Producer data changed without membership change; keeping current arrangement")
            return self._assets

    def update_producers(
        self,
        image_sets: Optional[List[ImageSet]] = None,
        selected_animation_ids: Optional[List[str]] = None,
        video_batch: Optional[List[GeneratedVideo]] = None,
        video_history: Optional[List[GeneratedVideo]] = None,
    ) -> Tuple[Asset, ...]:
        """Replace the given parts of the producer snapshot, then refresh"""
        with self._lock:
            snapshot = self.snapshot
            if image_sets is not None:
                snapshot.image_sets = list(image_sets)
            if selected_animation_ids is not None:
                snapshot.selected_animation_ids = list(selected_animation_ids)
            if video_batch is not None:
                snapshot.video_batch = list(video_batch)
            if video_history is not None:
                snapshot.video_history = list(video_history)
            return self.refresh(snapshot)

    def edit(
        self,
        operation: Callable[[List[Asset]], Optional[List[Asset]]],
        persist: bool = True,
    ) -> Optional[Tuple[Asset, ...]]:
        """Run a read-modify-write on the live list under the writer lock.

        ``operation`` returns the new list, or None to leave everything as is.
        """
        with self._lock:
            updated = operation(list(self._assets))
            if updated is None:
                return None
            return self.commit(updated, persist=persist)

    def commit(self, assets: Sequence[Asset], persist: bool = True) -> Tuple[Asset, ...]:
        with self._lock:
            self._assets = tuple(renumber(assets))
            if persist:
                self.persist_order(self._assets)
            self._publish()
            return self._assets

    def clear(self) -> Tuple[Asset, ...]:
        """Empty the list and delete the stored override entirely"""
        with self._lock:
            self._assets = ()
            self.clear_stored_order()
            self._publish()
            logger.info("Cleared all mixed content items")
            return self._assets

    def merge_batch(self, results: Sequence[Asset]) -> Tuple[Asset, ...]:
        """Append a finished batch's results in one step.

        Results join the animation results set (selected, so they stay in the
        sequence on the next re-collection) and the end of the live list.
        The override is written once for the whole batch.
        """
        with self._lock:
            if not results:
                return self._assets

            snapshot = self.snapshot
            animation_set = snapshot.animation_set()
            if animation_set is None:
                animation_set = ImageSet(id=ANIMATION_RESULTS_SET_ID, original_prompt="All Animation Results")
                snapshot.image_sets.append(animation_set)
            while len(animation_set.image_ids) < len(animation_set.image_urls):
                animation_set.image_ids.append(animation_set.asset_id_at(len(animation_set.image_ids)))
            while len(animation_set.final_prompts) < len(animation_set.image_urls):
                animation_set.final_prompts.append("")

            known_ids = {asset.id for asset in self._assets} | set(animation_set.image_ids)
            merged = list(self._assets)
            added = 0
            for asset in results:
                if asset.id in known_ids:
                    logger.debug(f"Batch result {asset.id} already present; skipping")
                    continue
                index = len(animation_set.image_urls)
                animation_set.image_urls.append(asset.url)
                animation_set.final_prompts.append(asset.title)
                animation_set.image_ids.append(asset.id)
                snapshot.selected_animation_ids.append(asset.id)
                merged.append(replace(
                    asset,
                    kind="animation",
                    source_label=ANIMATION_SOURCE_LABEL,
                    source_set_id=animation_set.id,
                    source_index=index,
                ))
                known_ids.add(asset.id)
                added += 1

            self._snapshot = snapshot
            logger.info(f"Merged {added} batch results into the sequence")
            return self.commit(merged, persist=True)

    def replace_asset_url(self, asset_id: str, url: str) -> Optional[Asset]:
        """Point an existing asset at regenerated content; id and position stay"""
        with self._lock:
            position = next(
                (index for index, asset in enumerate(self._assets) if asset.id == asset_id),
                None,
            )
            if position is None:
                return None
            previous = self._assets[position]
            updated = replace(previous, url=url, thumbnail_url=url)
            assets = list(self._assets)
            assets[position] = updated
            self._assets = tuple(assets)

            if self._snapshot is not None and previous.source_set_id is not None:
                for image_set in self._snapshot.image_sets:
                    if image_set.id == previous.source_set_id and previous.source_index < len(image_set.image_urls):
                        image_set.image_urls[previous.source_index] = url
            self._publish()
            return updated

    def subscribe(self, listener: SequenceListener):
        self._listeners.append(listener)

    def _publish(self):
        final_sequence = FinalSequence.from_assets(self._assets)
        self._final_sequence = final_sequence
        for listener in self._listeners:
            try:
                listener(final_sequence)
            except Exception:
                logger.exception("Final sequence listener %r failed", listener)

    def counts(self) -> Dict[str, int]:
        assets = self._assets
        counts = {kind: 0 for kind in ASSET_KINDS}
        for asset in assets:
            counts[asset.kind] += 1
        counts["total"] = len(assets)
        return counts
