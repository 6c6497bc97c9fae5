import threading
import time
from typing import Callable, Dict, Optional

from pipedeck.cli.messages import (
    ActionCompleted,
    CancelPipeline,
    CancelReAuth,
    Command,
    DeviceCodeReceived,
    Event,
    LoadJobLogs,
    LoadPipelineDetail,
    LoadPipelines,
    LogsLoaded,
    PipelineDetailLoaded,
    PipelinesLoaded,
    PollDeviceToken,
    ReAuthCompleted,
    RequestDeviceCode,
    RerunPipeline,
    SaveToken,
)
from pipedeck.domain import Repository
from pipedeck.logging import get_logger, log_extra
from pipedeck.providers.base import PipelineProvider

log = get_logger(__name__)


class CommandRunner:
    """
    Executes session commands against the provider and the re-auth callbacks.

    execute() blocks and is meant to run on a worker thread. It always returns
    exactly one result message; exceptions are captured into the message.
    """

    def __init__(
        self,
        provider: PipelineProvider,
        repo: Repository,
        authenticator=None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.repo = repo
        self.authenticator = authenticator
        self.clock = clock
        self._cancels: Dict[int, threading.Event] = {}
        self._lock = threading.Lock()

    # Re-auth cancellation

    def cancel_event(self, attempt: int) -> threading.Event:
        with self._lock:
            event = self._cancels.get(attempt)
            if event is None:
                event = threading.Event()
                self._cancels[attempt] = event
            return event

    def cancel_reauth(self, attempt: int) -> None:
        # The set event stays registered so a poll that has not started yet
        # still sees the cancellation.
        self.cancel_event(attempt).set()
        log.info("reauth_cancelled", extra=log_extra(attempt=attempt))

    def cancel_all(self) -> None:
        with self._lock:
            events = list(self._cancels.values())
            self._cancels.clear()
        for event in events:
            event.set()

    def _finish_attempt(self, attempt: int) -> None:
        with self._lock:
            self._cancels.pop(attempt, None)

    # Commands

    def execute(self, command: Command) -> Optional[Event]:
        """
        Run one command. Network commands return their result message; local
        commands (CancelReAuth, SaveToken) return None.
        """
        name = type(command).__name__
        if isinstance(command, CancelReAuth):
            self.cancel_reauth(command.attempt)
            return None
        if isinstance(command, SaveToken):
            self._save_token(command)
            return None
        if isinstance(command, LoadPipelines):
            return self._load_pipelines()
        if isinstance(command, LoadPipelineDetail):
            return self._load_detail(command)
        if isinstance(command, LoadJobLogs):
            return self._load_logs(command)
        if isinstance(command, (RerunPipeline, CancelPipeline)):
            return self._mutate(command)
        if isinstance(command, RequestDeviceCode):
            return self._request_code(command)
        if isinstance(command, PollDeviceToken):
            return self._poll_token(command)
        log.warning("unknown_command", extra=log_extra(command=name))
        return None

    def _load_pipelines(self) -> PipelinesLoaded:
        try:
            pipelines = self.provider.list_pipelines(self.repo)
        except Exception as exc:
            log.warning(
                "pipelines_load_failed",
                extra=log_extra(command="list_pipelines", error=str(exc), error_type=exc.__class__.__name__),
            )
            return PipelinesLoaded(error=exc)
        log.debug("pipelines_loaded", extra=log_extra(command="list_pipelines", count=len(pipelines)))
        return PipelinesLoaded(pipelines=tuple(pipelines))

    def _load_detail(self, command: LoadPipelineDetail) -> PipelineDetailLoaded:
        try:
            pipeline = self.provider.get_pipeline(self.repo, command.pipeline_id)
        except Exception as exc:
            log.warning(
                "pipeline_detail_failed",
                extra=log_extra(command="get_pipeline", pipeline_id=command.pipeline_id, error=str(exc)),
            )
            return PipelineDetailLoaded(pipeline_id=command.pipeline_id, error=exc)
        return PipelineDetailLoaded(pipeline_id=command.pipeline_id, pipeline=pipeline)

    def _load_logs(self, command: LoadJobLogs) -> LogsLoaded:
        try:
            content = self.provider.get_job_logs(self.repo, command.job_id)
        except Exception as exc:
            log.warning(
                "job_logs_failed",
                extra=log_extra(command="get_job_logs", job_id=command.job_id, error=str(exc)),
            )
            return LogsLoaded(job_id=command.job_id, job_name=command.job_name, error=exc)
        return LogsLoaded(job_id=command.job_id, job_name=command.job_name, content=content)

    def _mutate(self, command) -> ActionCompleted:
        action = "rerun" if isinstance(command, RerunPipeline) else "cancel"
        try:
            if action == "rerun":
                self.provider.rerun_pipeline(self.repo, command.pipeline_id)
            else:
                self.provider.cancel_pipeline(self.repo, command.pipeline_id)
        except Exception as exc:
            log.warning(
                "pipeline_action_failed",
                extra=log_extra(command=action, pipeline_id=command.pipeline_id, error=str(exc)),
            )
            return ActionCompleted(action=action, pipeline_id=command.pipeline_id, error=exc)
        log.info("pipeline_action_done", extra=log_extra(command=action, pipeline_id=command.pipeline_id))
        return ActionCompleted(action=action, pipeline_id=command.pipeline_id)

    def _request_code(self, command: RequestDeviceCode) -> DeviceCodeReceived:
        requested_at = self.clock()
        cancel = self.cancel_event(command.attempt)
        try:
            code = self.authenticator.request_code(command.provider, cancel)
        except Exception as exc:
            self._finish_attempt(command.attempt)
            log.warning(
                "device_code_failed",
                extra=log_extra(provider=command.provider, attempt=command.attempt, error=str(exc)),
            )
            return DeviceCodeReceived(
                provider=command.provider,
                attempt=command.attempt,
                requested_at=requested_at,
                error=exc,
            )
        return DeviceCodeReceived(
            provider=command.provider,
            attempt=command.attempt,
            code=code,
            requested_at=requested_at,
        )

    def _poll_token(self, command: PollDeviceToken) -> ReAuthCompleted:
        cancel = self.cancel_event(command.attempt)
        try:
            token = self.authenticator.poll_token(
                command.provider,
                command.device_code,
                command.interval,
                deadline=command.deadline,
                cancel=cancel,
            )
        except Exception as exc:
            log.warning(
                "device_poll_failed",
                extra=log_extra(provider=command.provider, attempt=command.attempt, error=str(exc)),
            )
            return ReAuthCompleted(provider=command.provider, attempt=command.attempt, error=exc)
        finally:
            self._finish_attempt(command.attempt)
        return ReAuthCompleted(provider=command.provider, attempt=command.attempt, token=token)

    def _save_token(self, command: SaveToken) -> None:
        try:
            self.authenticator.token_refreshed(command.provider, command.token)
        except Exception as exc:
            log.error(
                "token_save_failed",
                extra=log_extra(provider=command.provider, error=str(exc), error_type=exc.__class__.__name__),
            )
