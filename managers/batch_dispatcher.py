"""Batch dispatcher: rate-limited generation of many prompts in fixed groups"""

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from errors import ValidationError
from managers.asset_aggregator import AssetAggregator
from models.asset import Asset
from models.generation import (
    RUN_CANCELLED,
    RUN_COMPLETED,
    RUN_RUNNING,
    BatchEvent,
    BatchRun,
    GenerationRequest,
    ReferenceAsset,
)
from models.producer import ANIMATION_SOURCE_LABEL

logger = logging.getLogger("MCP_Server")

DEFAULT_REQUEST_TIMEOUT = 300
# finished runs kept for status queries; older ones are evicted
MAX_FINISHED_RUNS = 20


class BatchDispatcher:
    """Runs GenerationRequests against the generation endpoint.

    Requests go out in groups of ``GROUP_SIZE`` launched together; the next
    group starts only after every request of the current one has settled,
    followed by a ``COOLDOWN_SECONDS`` countdown. Individual failures are
    recorded and never stop the batch. When the run ends, all results are
    merged into the aggregator in one append.
    """

    def __init__(
        self,
        client,
        aggregator: AssetAggregator,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_finished_runs: int = MAX_FINISHED_RUNS,
    ):
        self.client = client
        self.aggregator = aggregator
        self.request_timeout = request_timeout
        self._sleep = sleep
        self.max_finished_runs = max_finished_runs
        self._runs: Dict[str, BatchRun] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def get_run(self, run_id: str) -> Optional[BatchRun]:
        return self._runs.get(run_id)

    def list_runs(self) -> List[BatchRun]:
        return list(self._runs.values())

    def prepare(
        self,
        requests: Sequence[GenerationRequest],
        reference_assets: Optional[Sequence[ReferenceAsset]] = None,
    ) -> BatchRun:
        """Validate input and create an idle BatchRun.

        Shared ``reference_assets`` are attached to every request that does
        not carry its own.
        """
        if not requests:
            raise ValidationError("No prompts selected for batch generation")

        shared_assets = list(reference_assets or [])
        prepared: List[GenerationRequest] = []
        seen_ids = set()
        for request in requests:
            if request.id in seen_ids:
                raise ValidationError(f"Duplicate request id '{request.id}' in batch")
            seen_ids.add(request.id)
            assets = request.reference_assets or shared_assets
            if not assets:
                raise ValidationError("No reference assets uploaded for batch generation")
            prepared.append(replace(request, reference_assets=list(assets)))

        batch_run = BatchRun(run_id=f"anim-batch-{uuid.uuid4().hex[:12]}", requests=prepared)
        self._runs[batch_run.run_id] = batch_run
        return batch_run

    async def dispatch(
        self,
        requests: Sequence[GenerationRequest],
        reference_assets: Optional[Sequence[ReferenceAsset]] = None,
        events: Optional[asyncio.Queue] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchRun:
        batch_run = self.prepare(requests, reference_assets)
        return await self.run(batch_run, events=events, cancel_event=cancel_event)

    def start(
        self,
        requests: Sequence[GenerationRequest],
        reference_assets: Optional[Sequence[ReferenceAsset]] = None,
        events: Optional[asyncio.Queue] = None,
    ) -> BatchRun:
        """Validate synchronously, then run the batch as a background task.

        Must be called from a running event loop.
        """
        batch_run = self.prepare(requests, reference_assets)
        task = asyncio.create_task(self.run(batch_run, events=events))
        self._tasks[batch_run.run_id] = task
        task.add_done_callback(self._on_task_done)
        return batch_run

    def _on_task_done(self, task: asyncio.Task):
        self._tasks = {run_id: t for run_id, t in self._tasks.items() if t is not task}
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Batch generation task failed", exc_info=exc)

    def cancel(self, run_id: str) -> bool:
        """Stop dispatching further groups; results produced so far are kept"""
        batch_run = self._runs.get(run_id)
        if batch_run is None or batch_run.is_finished:
            return False
        cancel_event = self._cancel_events.get(run_id)
        if cancel_event is None:
            cancel_event = asyncio.Event()
            self._cancel_events[run_id] = cancel_event
        cancel_event.set()
        logger.info(f"Cancellation requested for batch {run_id}")
        return True

    async def run(
        self,
        batch_run: BatchRun,
        events: Optional[asyncio.Queue] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchRun:
        run_id = batch_run.run_id
        self._runs[run_id] = batch_run
        if cancel_event is None:
            cancel_event = self._cancel_events.get(run_id) or asyncio.Event()
        self._cancel_events[run_id] = cancel_event

        batch_run.status = RUN_RUNNING
        batch_run.started_at = datetime.now()
        groups = batch_run.groups()
        self._emit(events, "started", batch_run, total_count=batch_run.total_count, total_groups=len(groups))

        cancelled = False
        for group_number, group in enumerate(groups, start=1):
            if cancel_event.is_set():
                self._skip(batch_run, groups[group_number - 1:])
                cancelled = True
                break

            batch_run.current_group = group_number
            logger.info(f"Processing batch {group_number}/{len(groups)} ({len(group)} prompts)")
            self._emit(events, "group_started", batch_run, group=group_number, size=len(group))

            outcomes = await asyncio.gather(
                *(self._generate_one(batch_run, request, events) for request in group)
            )
            success_count = sum(1 for outcome in outcomes if outcome)
            logger.info(
                f"Batch {group_number} completed: {success_count} success, "
                f"{len(group) - success_count} errors"
            )

            if group_number < len(groups):
                if await self._cool_down(batch_run, events, cancel_event):
                    self._skip(batch_run, groups[group_number:])
                    cancelled = True
                    break

        batch_run.current_group = 0
        batch_run.cooldown_remaining = 0
        batch_run.finished_at = datetime.now()
        batch_run.status = RUN_CANCELLED if cancelled else RUN_COMPLETED
        self._cancel_events.pop(run_id, None)
        batch_run.release_reference_assets()
        self._evict_finished_runs()

        # results arrive in completion order; merge them in request order
        positions = {self._asset_id(run_id, request): index for index, request in enumerate(batch_run.requests)}
        batch_run.results.sort(key=lambda asset: positions[asset.id])
        self.aggregator.merge_batch(batch_run.results)

        logger.info(
            f"Batch generation {batch_run.status}: generated "
            f"{len(batch_run.results)}/{batch_run.total_count} assets"
        )
        self._emit(
            events,
            batch_run.status,
            batch_run,
            succeeded=len(batch_run.results),
            failed=len(batch_run.failures),
            skipped=len(batch_run.skipped),
        )
        return batch_run

    def _evict_finished_runs(self):
        finished = [run_id for run_id, run in self._runs.items() if run.is_finished]
        for run_id in finished[:max(0, len(finished) - self.max_finished_runs)]:
            del self._runs[run_id]

    async def _generate_one(
        self,
        batch_run: BatchRun,
        request: GenerationRequest,
        events: Optional[asyncio.Queue],
    ) -> bool:
        try:
            asset_url = await self._call_endpoint(request)
        except asyncio.TimeoutError:
            error = f"Timed out after {self.request_timeout} seconds"
        except Exception as e:
            error = str(e) or e.__class__.__name__
        else:
            asset = self._build_asset(batch_run.run_id, request, asset_url)
            batch_run.record_success(asset)
            logger.debug(
                f"Generated {request.title} ({batch_run.completed_count}/{batch_run.total_count})"
            )
            self._emit(events, "result", batch_run, request_id=request.id, asset=asset.to_dict())
            return True

        logger.warning(f"Error generating {request.title}: {error}")
        batch_run.record_failure(request.id, error)
        self._emit(events, "failure", batch_run, request_id=request.id, error=error)
        return False

    async def _call_endpoint(self, request: GenerationRequest) -> str:
        return await asyncio.wait_for(
            asyncio.to_thread(self.client.generate, request.prompt, request.reference_assets),
            timeout=self.request_timeout,
        )

    @staticmethod
    def _asset_id(run_id: str, request: GenerationRequest) -> str:
        return f"{run_id}-{request.id}"

    def _build_asset(self, run_id: str, request: GenerationRequest, asset_url: str) -> Asset:
        return Asset(
            id=self._asset_id(run_id, request),
            kind="animation",
            title=request.prompt or request.title,
            url=asset_url,
            thumbnail_url=asset_url,
            source_label=ANIMATION_SOURCE_LABEL,
        )

    async def _cool_down(
        self,
        batch_run: BatchRun,
        events: Optional[asyncio.Queue],
        cancel_event: asyncio.Event,
    ) -> bool:
        """Count down between groups; returns True if cancelled meanwhile"""
        logger.info(f"Waiting {batch_run.cooldown_seconds} seconds before next batch...")
        for remaining in range(batch_run.cooldown_seconds, 0, -1):
            if cancel_event.is_set():
                batch_run.cooldown_remaining = 0
                return True
            batch_run.cooldown_remaining = remaining
            self._emit(events, "cooldown", batch_run, remaining=remaining)
            await self._sleep(1)
        batch_run.cooldown_remaining = 0
        return cancel_event.is_set()

    def _skip(self, batch_run: BatchRun, groups: List[List[GenerationRequest]]):
        for group in groups:
            batch_run.skipped.extend(request.id for request in group)
        logger.info(f"Batch {batch_run.run_id} cancelled; {len(batch_run.skipped)} prompts not dispatched")

    def _emit(self, events: Optional[asyncio.Queue], event_type: str, batch_run: BatchRun, **data):
        if events is None:
            return
        data.setdefault("completed_count", batch_run.completed_count)
        data.setdefault("total_count", batch_run.total_count)
        events.put_nowait(BatchEvent(type=event_type, run_id=batch_run.run_id, data=data))

    async def regenerate(
        self,
        asset_id: str,
        prompt: str,
        reference_assets: Sequence[ReferenceAsset],
    ) -> Asset:
        """Generate a replacement for one sequence item, keeping its id and position"""
        existing = next((asset for asset in self.aggregator.assets if asset.id == asset_id), None)
        if existing is None:
            raise ValidationError(f"Asset {asset_id} is not in the sequence")
        if existing.kind == "video":
            raise ValidationError("Videos cannot be regenerated through the image generation endpoint")
        if not reference_assets:
            raise ValidationError("No reference assets available for regeneration")

        request = GenerationRequest(
            id=asset_id,
            title=existing.title,
            prompt=prompt or existing.title,
            reference_assets=list(reference_assets),
        )
        asset_url = await self._call_endpoint(request)
        updated = self.aggregator.replace_asset_url(asset_id, asset_url)
        if updated is None:
            raise ValidationError(f"Asset {asset_id} was removed while regenerating")
        logger.info(f"Regenerated asset {asset_id}")
        return updated
