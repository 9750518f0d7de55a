"""Shared fixtures for sequencer tests"""

import pytest

from managers.asset_aggregator import AssetAggregator
from managers.order_store import MemoryKeyValueStore, OrderStore
from models.producer import ANIMATION_RESULTS_SET_ID, GeneratedVideo, ImageSet, ProducerSnapshot


class SpyKeyValueStore(MemoryKeyValueStore):
    """In-memory store that counts writes"""

    def __init__(self):
        super().__init__()
        self.set_calls = 0
        self.remove_calls = 0

    def set(self, key, value):
        self.set_calls += 1
        super().set(key, value)

    def remove(self, key):
        self.remove_calls += 1
        super().remove(key)


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def build_snapshot(animations=2, images=3, batch_videos=0, history_videos=0):
    """Snapshot with `animations` selected animation results, one image set and videos"""
    animation_set = ImageSet(
        id=ANIMATION_RESULTS_SET_ID,
        image_urls=[f"https://cdn.example.com/anim-{i}.png" for i in range(animations + 1)],
        final_prompts=[f"animation prompt {i}" for i in range(animations + 1)],
        original_prompt="All Animation Results",
    )
    # the last animation result is never selected
    selected = [animation_set.asset_id_at(i) for i in range(animations)]
    image_set = ImageSet(
        id="set-a",
        image_urls=[f"https://cdn.example.com/img-{i}.png" for i in range(images)],
        final_prompts=[f"image prompt {i}" for i in range(images)],
    )
    return ProducerSnapshot(
        image_sets=[animation_set, image_set],
        selected_animation_ids=selected,
        video_batch=[
            GeneratedVideo(id=f"vb{i}", video_url=f"https://cdn.example.com/vb{i}.mp4", prompt=f"batch {i}", duration=5)
            for i in range(batch_videos)
        ],
        video_history=[
            GeneratedVideo(id=f"vh{i}", video_url=f"https://cdn.example.com/vh{i}.mp4", prompt=f"history {i}")
            for i in range(history_videos)
        ],
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store():
    return SpyKeyValueStore()


@pytest.fixture
def order_store(kv_store, clock):
    return OrderStore(kv_store, clock=clock)


@pytest.fixture
def aggregator(order_store):
    return AssetAggregator(order_store)
