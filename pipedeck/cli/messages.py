"""
Events consumed by the session state machine and the commands it emits.

Every command that touches the network produces exactly one result message,
which carries either a payload or the exception that ended the call.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from pipedeck.auth.device import DeviceCodeResponse, TokenResponse
from pipedeck.domain import Pipeline


# Input events


@dataclass(frozen=True)
class Key:
    key: str


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    pass


# Result messages


@dataclass(frozen=True)
class PipelinesLoaded:
    pipelines: Tuple[Pipeline, ...] = ()
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class PipelineDetailLoaded:
    pipeline_id: str
    pipeline: Optional[Pipeline] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class LogsLoaded:
    job_id: str
    job_name: str
    content: str = ""
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ActionCompleted:
    action: str
    pipeline_id: str
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class DeviceCodeReceived:
    provider: str
    attempt: int
    code: Optional[DeviceCodeResponse] = None
    requested_at: float = 0.0
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ReAuthCompleted:
    provider: str
    attempt: int
    token: Optional[TokenResponse] = None
    error: Optional[BaseException] = None


Event = Union[
    Key,
    Resize,
    Tick,
    PipelinesLoaded,
    PipelineDetailLoaded,
    LogsLoaded,
    ActionCompleted,
    DeviceCodeReceived,
    ReAuthCompleted,
]


# Commands


@dataclass(frozen=True)
class LoadPipelines:
    pass


@dataclass(frozen=True)
class LoadPipelineDetail:
    pipeline_id: str


@dataclass(frozen=True)
class LoadJobLogs:
    job_id: str
    job_name: str


@dataclass(frozen=True)
class RerunPipeline:
    pipeline_id: str


@dataclass(frozen=True)
class CancelPipeline:
    pipeline_id: str


@dataclass(frozen=True)
class RequestDeviceCode:
    provider: str
    attempt: int


@dataclass(frozen=True)
class PollDeviceToken:
    provider: str
    attempt: int
    device_code: str
    interval: int
    deadline: Optional[float] = None


@dataclass(frozen=True)
class CancelReAuth:
    attempt: int


@dataclass(frozen=True)
class SaveToken:
    provider: str
    token: TokenResponse


@dataclass(frozen=True)
class ScheduleTick:
    seconds: float


@dataclass(frozen=True)
class Quit:
    pass


Command = Union[
    LoadPipelines,
    LoadPipelineDetail,
    LoadJobLogs,
    RerunPipeline,
    CancelPipeline,
    RequestDeviceCode,
    PollDeviceToken,
    CancelReAuth,
    SaveToken,
    ScheduleTick,
    Quit,
]

# Commands that block on the network and run off the event loop.
NETWORK_COMMANDS = (
    LoadPipelines,
    LoadPipelineDetail,
    LoadJobLogs,
    RerunPipeline,
    CancelPipeline,
    RequestDeviceCode,
    PollDeviceToken,
)
