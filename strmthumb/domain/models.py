from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field

class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"

TERMINAL_STATUSES = (JobStatus.SUCCEEDED, JobStatus.SKIPPED, JobStatus.FAILED)

class BatchState(str, Enum):
    STARTED = "STARTED"
    RUNNING = "RUNNING"
    DRAINING = "DRAINING"
    COMPLETED = "COMPLETED"

class JobResult(BaseModel):
    """Terminal outcome of one job."""
    identifier: str
    status: JobStatus
    reason: Optional[str] = None
    thumbnail_path: Optional[Path] = None
    nfo_path: Optional[Path] = None
    duration: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.SKIPPED)

class ThumbnailJob(BaseModel):
    identifier: str
    status: JobStatus = JobStatus.PENDING
    result: Optional[JobResult] = None

class BatchProgress(BaseModel):
    """Aggregate counters for one batch; skipped jobs also count as succeeded."""
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def finished(self) -> bool:
        return self.processed >= self.total

class QueueStats(BaseModel):
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    discarded: int = 0

    @property
    def success_rate(self) -> Optional[float]:
        settled = self.completed + self.failed
        if settled == 0:
            return None
        return round(self.completed / settled * 100.0, 2)

class QueueStatus(BaseModel):
    running: int
    queued: int
    concurrency_limit: int
    stats: QueueStats = Field(default_factory=QueueStats)
