"""Tests for BatchDispatcher grouping, cooldown, failures and cancellation

Run with pytest from project root:
    pytest tests/test_batch_dispatcher.py -v
"""

import asyncio
import threading
import time

import pytest

from conftest import build_snapshot
from errors import GenerationError, ValidationError
from managers.batch_dispatcher import BatchDispatcher
from models.generation import (
    COOLDOWN_SECONDS,
    RUN_CANCELLED,
    RUN_COMPLETED,
    GenerationRequest,
    ReferenceAsset,
)

REFERENCE = ReferenceAsset(name="ref.png", data=b"\x89PNG", mime_type="image/png")


class FakeClient:
    """Generation client that records prompts and fails on demand"""

    def __init__(self, failing=(), delay=0.0):
        self.failing = set(failing)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def generate(self, prompt, reference_assets):
        with self._lock:
            self.calls.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        if prompt in self.failing:
            raise GenerationError("Failed to generate animation", status_code=500)
        return f"https://cdn.example.com/{prompt.replace(' ', '-')}.mp4"


class FakeSleep:
    """Records cooldown ticks; optionally sets a cancel event after N ticks"""

    def __init__(self, cancel_event=None, cancel_after=None):
        self.calls = []
        self.cancel_event = cancel_event
        self.cancel_after = cancel_after

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if self.cancel_event is not None and len(self.calls) == self.cancel_after:
            self.cancel_event.set()


def make_requests(count):
    return [
        GenerationRequest(id=f"prompt-{index}", title=f"Prompt {index + 1}", prompt=f"prompt {index}")
        for index in range(count)
    ]


def drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


@pytest.fixture
def seeded_aggregator(aggregator):
    aggregator.refresh(build_snapshot(animations=0, images=2))
    return aggregator


class TestPrepare:
    """Tests for input validation"""

    def test_empty_batch(self, aggregator):
        """Test an empty selection is rejected before any call"""
        client = FakeClient()
        dispatcher = BatchDispatcher(client, aggregator)

        with pytest.raises(ValidationError, match="No prompts"):
            dispatcher.prepare([], [REFERENCE])
        assert client.calls == []

    def test_missing_reference_assets(self, aggregator):
        """Test a batch without reference assets is rejected"""
        dispatcher = BatchDispatcher(FakeClient(), aggregator)

        with pytest.raises(ValidationError, match="reference assets"):
            dispatcher.prepare(make_requests(2), [])

    def test_duplicate_request_ids(self, aggregator):
        """Test duplicate request ids are rejected"""
        dispatcher = BatchDispatcher(FakeClient(), aggregator)
        requests = make_requests(2) + make_requests(1)

        with pytest.raises(ValidationError, match="Duplicate"):
            dispatcher.prepare(requests, [REFERENCE])

    def test_shared_assets_attached(self, aggregator):
        """Test shared reference assets are attached to every request"""
        dispatcher = BatchDispatcher(FakeClient(), aggregator)

        batch_run = dispatcher.prepare(make_requests(3), [REFERENCE])

        assert all(request.reference_assets == [REFERENCE] for request in batch_run.requests)
        assert batch_run.run_id.startswith("anim-batch-")
        assert batch_run.total_groups == 1
        assert dispatcher.get_run(batch_run.run_id) is batch_run


class TestDispatch:
    """Tests for grouped dispatch"""

    def test_failure_does_not_stop_batch(self, kv_store, seeded_aggregator):
        """Test 23 prompts with one failure: three groups, two cooldowns, 22 results"""
        client = FakeClient(failing={"prompt 14"})
        sleep = FakeSleep()
        dispatcher = BatchDispatcher(client, seeded_aggregator, sleep=sleep)

        batch_run = asyncio.run(dispatcher.dispatch(make_requests(23), [REFERENCE]))

        assert batch_run.status == RUN_COMPLETED
        assert batch_run.completed_count == 23
        assert len(batch_run.results) + len(batch_run.failures) == batch_run.total_count
        assert len(batch_run.results) == 22
        assert [failure.request_id for failure in batch_run.failures] == ["prompt-14"]
        assert "Failed to generate animation" in batch_run.failures[0].error
        assert len(sleep.calls) == 2 * COOLDOWN_SECONDS
        assert len(client.calls) == 23

        assets = seeded_aggregator.assets
        assert len(assets) == 2 + 22
        assert [asset.order for asset in assets] == list(range(24))
        assert assets[-1].id == f"{batch_run.run_id}-prompt-22"
        assert f"{batch_run.run_id}-prompt-14" not in [asset.id for asset in assets]
        assert kv_store.set_calls == 1

    @pytest.mark.parametrize("count,groups", [(1, 1), (10, 1), (11, 2), (20, 2), (21, 3)])
    def test_cooldown_count(self, aggregator, count, groups):
        """Test cooldowns run only between groups"""
        client = FakeClient()
        sleep = FakeSleep()
        dispatcher = BatchDispatcher(client, aggregator, sleep=sleep)

        batch_run = asyncio.run(dispatcher.dispatch(make_requests(count), [REFERENCE]))

        assert batch_run.total_groups == groups
        assert len(sleep.calls) == (groups - 1) * COOLDOWN_SECONDS
        assert len(client.calls) == count

    def test_groups_dispatched_in_order(self, aggregator):
        """Test no prompt of a later group starts before its predecessors"""
        client = FakeClient(delay=0.01)
        dispatcher = BatchDispatcher(client, aggregator, sleep=FakeSleep())

        asyncio.run(dispatcher.dispatch(make_requests(25), [REFERENCE]))

        assert set(client.calls[:10]) == {f"prompt {index}" for index in range(10)}
        assert set(client.calls[10:20]) == {f"prompt {index}" for index in range(10, 20)}
        assert set(client.calls[20:]) == {f"prompt {index}" for index in range(20, 25)}

    def test_results_in_request_order(self, seeded_aggregator):
        """Test merged results follow request order regardless of completion order"""
        dispatcher = BatchDispatcher(FakeClient(delay=0.01), seeded_aggregator, sleep=FakeSleep())

        batch_run = asyncio.run(dispatcher.dispatch(make_requests(12), [REFERENCE]))

        expected = [f"{batch_run.run_id}-prompt-{index}" for index in range(12)]
        assert [asset.id for asset in batch_run.results] == expected
        assert [asset.id for asset in seeded_aggregator.assets][2:] == expected

    def test_timeout_recorded_as_failure(self, aggregator):
        """Test a request exceeding its timeout becomes a failure"""
        client = FakeClient(delay=0.5)
        dispatcher = BatchDispatcher(client, aggregator, request_timeout=0.05, sleep=FakeSleep())

        batch_run = asyncio.run(dispatcher.dispatch(make_requests(1), [REFERENCE]))

        assert batch_run.status == RUN_COMPLETED
        assert batch_run.results == []
        assert batch_run.failures[0].error == "Timed out after 0.05 seconds"

    def test_progress_events(self, aggregator):
        """Test the event stream reports start, results, cooldown and completion"""
        client = FakeClient(failing={"prompt 3"})
        dispatcher = BatchDispatcher(client, aggregator, sleep=FakeSleep())

        async def scenario():
            events = asyncio.Queue()
            batch_run = await dispatcher.dispatch(make_requests(12), [REFERENCE], events=events)
            return batch_run, drain(events)

        batch_run, events = asyncio.run(scenario())
        types = [event.type for event in events]

        assert types[0] == "started"
        assert types[-1] == "completed"
        assert types.count("group_started") == 2
        assert types.count("result") == 11
        assert types.count("failure") == 1
        assert types.count("cooldown") == COOLDOWN_SECONDS
        cooldowns = [event.data["remaining"] for event in events if event.type == "cooldown"]
        assert cooldowns == list(range(COOLDOWN_SECONDS, 0, -1))
        assert events[-1].data == {
            "succeeded": 11,
            "failed": 1,
            "skipped": 0,
            "completed_count": 12,
            "total_count": 12,
        }
        assert all(event.run_id == batch_run.run_id for event in events)


class TestCancel:
    """Tests for cancellation between groups"""

    def test_cancel_during_cooldown(self, kv_store, seeded_aggregator):
        """Test cancelling mid-cooldown keeps produced results and skips the rest"""
        client = FakeClient()

        async def scenario():
            cancel_event = asyncio.Event()
            sleep = FakeSleep(cancel_event=cancel_event, cancel_after=3)
            dispatcher = BatchDispatcher(client, seeded_aggregator, sleep=sleep)
            batch_run = await dispatcher.dispatch(make_requests(23), [REFERENCE], cancel_event=cancel_event)
            return batch_run, sleep

        batch_run, sleep = asyncio.run(scenario())

        assert batch_run.status == RUN_CANCELLED
        assert len(sleep.calls) == 3
        assert len(client.calls) == 10
        assert len(batch_run.results) == 10
        assert batch_run.skipped == [f"prompt-{index}" for index in range(10, 23)]
        assert len(seeded_aggregator.assets) == 12
        assert kv_store.set_calls == 1

    def test_cancel_before_start(self, kv_store, aggregator):
        """Test a run cancelled before it starts dispatches nothing"""
        client = FakeClient()
        dispatcher = BatchDispatcher(client, aggregator, sleep=FakeSleep())

        async def scenario():
            batch_run = dispatcher.prepare(make_requests(5), [REFERENCE])
            assert dispatcher.cancel(batch_run.run_id) is True
            return await dispatcher.run(batch_run)

        batch_run = asyncio.run(scenario())

        assert batch_run.status == RUN_CANCELLED
        assert client.calls == []
        assert len(batch_run.skipped) == 5
        assert kv_store.set_calls == 0

    def test_cancel_unknown_or_finished(self, aggregator):
        """Test cancel returns False for unknown and finished runs"""
        dispatcher = BatchDispatcher(FakeClient(), aggregator, sleep=FakeSleep())

        batch_run = asyncio.run(dispatcher.dispatch(make_requests(1), [REFERENCE]))

        assert dispatcher.cancel("missing") is False
        assert dispatcher.cancel(batch_run.run_id) is False

    def test_start_runs_in_background(self, aggregator):
        """Test start returns immediately and the task finishes the run"""
        dispatcher = BatchDispatcher(FakeClient(), aggregator, sleep=FakeSleep())

        async def scenario():
            batch_run = dispatcher.start(make_requests(3), [REFERENCE])
            assert batch_run.completed_count == 0
            while not batch_run.is_finished:
                await asyncio.sleep(0.01)
            return batch_run

        batch_run = asyncio.run(scenario())

        assert batch_run.status == RUN_COMPLETED
        assert len(aggregator.assets) == 3


class TestRunRetention:
    """Tests for what a finished run keeps in memory"""

    def test_finished_run_releases_reference_assets(self, aggregator):
        """Test uploaded image bytes are dropped once a run finishes"""
        large_reference = ReferenceAsset(name="big.png", data=b"\x00" * 1_000_000, mime_type="image/png")
        dispatcher = BatchDispatcher(FakeClient(), aggregator, sleep=FakeSleep())

        batch_run = asyncio.run(dispatcher.dispatch(make_requests(2), [large_reference]))

        assert dispatcher.get_run(batch_run.run_id) is batch_run
        assert all(request.reference_assets == [] for request in batch_run.requests)
        assert batch_run.to_dict()["succeeded"] == 2

    def test_old_finished_runs_evicted(self, aggregator):
        """Test only the most recent finished runs are kept"""
        dispatcher = BatchDispatcher(FakeClient(), aggregator, sleep=FakeSleep(), max_finished_runs=2)

        run_ids = [
            asyncio.run(dispatcher.dispatch(make_requests(1), [REFERENCE])).run_id
            for _ in range(3)
        ]

        assert [run.run_id for run in dispatcher.list_runs()] == run_ids[1:]
        assert dispatcher.get_run(run_ids[0]) is None


class TestRegenerate:
    """Tests for regenerating one sequence item"""

    def test_regenerate_keeps_position(self, seeded_aggregator):
        """Test the regenerated asset keeps its id and slot"""
        client = FakeClient()
        dispatcher = BatchDispatcher(client, seeded_aggregator)

        updated = asyncio.run(dispatcher.regenerate("image-set-a-0", "a new take", [REFERENCE]))

        assert updated.id == "image-set-a-0"
        assert updated.url == "https://cdn.example.com/a-new-take.mp4"
        assert seeded_aggregator.assets[0].url == updated.url
        assert client.calls == ["a new take"]

    def test_regenerate_defaults_to_title(self, seeded_aggregator):
        """Test an empty prompt falls back to the asset title"""
        client = FakeClient()
        dispatcher = BatchDispatcher(client, seeded_aggregator)

        asyncio.run(dispatcher.regenerate("image-set-a-1", "", [REFERENCE]))

        assert client.calls == ["image prompt 1"]

    def test_regenerate_unknown_asset(self, seeded_aggregator):
        """Test regenerating an asset that is not in the sequence"""
        dispatcher = BatchDispatcher(FakeClient(), seeded_aggregator)

        with pytest.raises(ValidationError, match="not in the sequence"):
            asyncio.run(dispatcher.regenerate("missing", "prompt", [REFERENCE]))

    def test_regenerate_video_rejected(self, aggregator):
        """Test videos cannot be regenerated"""
        aggregator.refresh(build_snapshot(animations=0, images=0, batch_videos=1))
        dispatcher = BatchDispatcher(FakeClient(), aggregator)

        with pytest.raises(ValidationError, match="Videos"):
            asyncio.run(dispatcher.regenerate("video-vb0", "prompt", [REFERENCE]))

    def test_regenerate_without_reference(self, seeded_aggregator):
        """Test regeneration requires reference assets"""
        dispatcher = BatchDispatcher(FakeClient(), seeded_aggregator)

        with pytest.raises(ValidationError, match="reference assets"):
            asyncio.run(dispatcher.regenerate("image-set-a-0", "prompt", []))

    def test_regenerate_failure_propagates(self, seeded_aggregator):
        """Test a generation error surfaces and the asset is untouched"""
        dispatcher = BatchDispatcher(FakeClient(failing={"boom"}), seeded_aggregator)
        original_url = seeded_aggregator.assets[0].url

        with pytest.raises(GenerationError):
            asyncio.run(dispatcher.regenerate("image-set-a-0", "boom", [REFERENCE]))
        assert seeded_aggregator.assets[0].url == original_url
