from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Tuple


class PipelineStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Repository:
    owner: str
    name: str
    remote_url: str = ""

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class Step:
    name: str
    status: PipelineStatus
    duration: timedelta = timedelta(0)


@dataclass(frozen=True)
class Job:
    id: str
    name: str
    status: PipelineStatus
    stage: str = ""
    duration: timedelta = timedelta(0)
    started_at: Optional[datetime] = None
    steps: Tuple[Step, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Pipeline:
    id: str
    status: PipelineStatus
    branch: str = ""
    commit_sha: str = ""
    commit_message: str = ""
    author: str = ""
    created_at: Optional[datetime] = None
    duration: timedelta = timedelta(0)
    jobs: Tuple[Job, ...] = field(default_factory=tuple)

    @property
    def is_running(self) -> bool:
        return self.status == PipelineStatus.RUNNING


def any_running(pipelines: Iterable[Pipeline]) -> bool:
    return any(p.is_running for p in pipelines)


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as returned by the CI APIs; None when absent or malformed."""
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def span(start: Optional[datetime], end: Optional[datetime]) -> timedelta:
    if start is None or end is None:
        return timedelta(0)
    return end - start
