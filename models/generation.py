"""Batch generation data models"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.asset import Asset

# Fixed external rate limit: GROUP_SIZE requests, then COOLDOWN_SECONDS of rest
GROUP_SIZE = 10
COOLDOWN_SECONDS = 60

RUN_IDLE = "idle"
RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReferenceAsset:
    """Conditioning image sent along with every prompt"""
    name: str
    data: bytes = field(repr=False)
    mime_type: str = "application/octet-stream"


@dataclass
class GenerationRequest:
    id: str
    title: str
    prompt: str
    reference_assets: List[ReferenceAsset] = field(default_factory=list)


@dataclass
class BatchFailure:
    request_id: str
    error: str


@dataclass
class BatchEvent:
    """Progress notification pushed while a batch runs"""
    type: str  # started | group_started | result | failure | cooldown | completed | cancelled
    run_id: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchRun:
    """Lifecycle of one dispatch session; never persisted"""
    run_id: str
    requests: List[GenerationRequest]
    group_size: int = GROUP_SIZE
    cooldown_seconds: int = COOLDOWN_SECONDS
    status: str = RUN_IDLE
    completed_count: int = 0
    current_group: int = 0
    cooldown_remaining: int = 0
    results: List[Asset] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def total_count(self) -> int:
        return len(self.requests)

    @property
    def total_groups(self) -> int:
        return math.ceil(self.total_count / self.group_size) if self.requests else 0

    @property
    def is_finished(self) -> bool:
        return self.status in (RUN_COMPLETED, RUN_CANCELLED)

    def groups(self) -> List[List[GenerationRequest]]:
        return [
            self.requests[start:start + self.group_size]
            for start in range(0, self.total_count, self.group_size)
        ]

    def release_reference_assets(self):
        """Drop the uploaded image bytes once no further request will be sent"""
        self.requests = [replace(request, reference_assets=[]) for request in self.requests]

    def record_success(self, asset: Asset):
        self.results.append(asset)
        self.completed_count += 1

    def record_failure(self, request_id: str, error: str):
        self.failures.append(BatchFailure(request_id=request_id, error=error))
        self.completed_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "current_group": self.current_group,
            "total_groups": self.total_groups,
            "cooldown_remaining": self.cooldown_remaining,
            "succeeded": len(self.results),
            "failed": len(self.failures),
            "results": [asset.to_dict() for asset in self.results],
            "failures": [
                {"request_id": failure.request_id, "error": failure.error}
                for failure in self.failures
            ],
            "skipped": list(self.skipped),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
