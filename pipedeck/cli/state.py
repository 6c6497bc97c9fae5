"""
Navigation state machine for the dashboard session.

The session is one immutable SessionState value. handle(state, event) returns a
Transition carrying the next state and the commands the host should run; it
never blocks, never raises on provider errors, and never mutates the previous
value. Results of network commands arrive as messages in any order, so each
result is applied only when it still matches what the user is looking at.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from pipedeck.auth.device import DeviceCodeResponse
from pipedeck.cli.lists import CursorList, clamp
from pipedeck.cli.messages import (
    ActionCompleted,
    CancelPipeline,
    CancelReAuth,
    Command,
    DeviceCodeReceived,
    Event,
    Key,
    LoadJobLogs,
    LoadPipelineDetail,
    LoadPipelines,
    LogsLoaded,
    PipelineDetailLoaded,
    PipelinesLoaded,
    PollDeviceToken,
    Quit,
    ReAuthCompleted,
    RequestDeviceCode,
    RerunPipeline,
    Resize,
    SaveToken,
    ScheduleTick,
    Tick,
)
from pipedeck.domain import Job, Pipeline, Step, any_running
from pipedeck.errors import AuthExpiredError

FAST_REFRESH_SECONDS = 5
SLOW_REFRESH_SECONDS = 30
MIN_VISIBLE_LOG_LINES = 10

PipelineList = CursorList[Pipeline]
JobList = CursorList[Job]
StepList = CursorList[Step]

# Default key bindings. Key names follow Textual's naming.
KEYS_UP = ("up", "k")
KEYS_DOWN = ("down", "j")
KEYS_OPEN = ("enter",)
KEYS_BACK = ("escape", "esc")
KEYS_LOGS = ("l",)
KEYS_RERUN = ("r",)
KEYS_CANCEL = ("x",)
KEYS_CONFIRM = ("y",)
KEYS_REFRESH = ("ctrl+r",)
KEYS_QUIT = ("q", "ctrl+c")
KEYS_PAGE_UP = ("pageup", "pgup")
KEYS_PAGE_DOWN = ("pagedown", "pgdown")
KEYS_TOP = ("g", "home")
KEYS_BOTTOM = ("G", "end", "shift+g")


class View(str, Enum):
    PIPELINES = "pipelines"
    JOBS = "jobs"
    STEPS = "steps"
    LOGS = "logs"
    REAUTH = "reauth"


class ConfirmAction(str, Enum):
    RERUN = "rerun"
    CANCEL = "cancel"


@dataclass(frozen=True)
class ConfirmPrompt:
    """Pending destructive action; the target is captured when the prompt opens."""

    action: ConfirmAction
    pipeline_id: str
    branch: str = ""


@dataclass(frozen=True)
class LogViewer:
    job_id: str
    job_name: str
    content: str
    offset: int = 0
    return_view: View = View.JOBS

    @property
    def lines(self) -> Tuple[str, ...]:
        return tuple(self.content.split("\n"))

    @property
    def max_offset(self) -> int:
        return len(self.lines) - 1

    def scroll_to(self, offset: int) -> "LogViewer":
        return replace(self, offset=clamp(offset, 0, self.max_offset))


@dataclass(frozen=True)
class ReAuthState:
    provider: str
    attempt: int
    code: Optional[DeviceCodeResponse] = None


@dataclass(frozen=True)
class SessionState:
    view: View = View.PIPELINES
    pipelines: PipelineList = field(default_factory=CursorList)
    selected_pipeline: Optional[Pipeline] = None
    jobs: JobList = field(default_factory=CursorList)
    selected_job: Optional[Job] = None
    steps: StepList = field(default_factory=CursorList)
    log: Optional[LogViewer] = None
    confirm: Optional[ConfirmPrompt] = None
    reauth: Optional[ReAuthState] = None
    auth_attempts: int = 0
    reauth_enabled: bool = True
    loading: bool = False
    detail_loading: bool = False
    log_loading: bool = False
    error: Optional[str] = None
    width: int = 80
    height: int = 24


@dataclass(frozen=True)
class Transition:
    state: SessionState
    commands: Tuple[Command, ...] = ()


def visible_log_lines(height: int) -> int:
    return max(height - 4, MIN_VISIBLE_LOG_LINES)


def next_tick_interval(pipelines) -> int:
    """5 seconds while any pipeline is running, otherwise 30."""
    return FAST_REFRESH_SECONDS if any_running(pipelines) else SLOW_REFRESH_SECONDS


def expired_banner(provider: str) -> str:
    return f"{provider} session expired: press ctrl+r to retry"


def initial_state(width: int = 80, height: int = 24, reauth_enabled: bool = True) -> SessionState:
    return SessionState(loading=True, width=width, height=height, reauth_enabled=reauth_enabled)


def start(state: SessionState) -> Transition:
    """Commands issued when the session starts: first list load and first tick."""
    return Transition(replace(state, loading=True), (LoadPipelines(), ScheduleTick(FAST_REFRESH_SECONDS)))


def handle(state: SessionState, event: Event) -> Transition:
    if isinstance(event, Key):
        return _on_key(state, event.key)
    if isinstance(event, Resize):
        return Transition(replace(state, width=event.width, height=event.height))
    if isinstance(event, Tick):
        return _on_tick(state)
    if isinstance(event, PipelinesLoaded):
        return _on_pipelines(state, event)
    if isinstance(event, PipelineDetailLoaded):
        return _on_detail(state, event)
    if isinstance(event, LogsLoaded):
        return _on_logs(state, event)
    if isinstance(event, ActionCompleted):
        return _on_action(state, event)
    if isinstance(event, DeviceCodeReceived):
        return _on_device_code(state, event)
    if isinstance(event, ReAuthCompleted):
        return _on_reauth_completed(state, event)
    return Transition(state)


# Errors


def _describe(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


def _failed(state: SessionState, error: BaseException, prefix: str = "") -> Transition:
    """
    Route an error from any command. AuthExpiredError escalates to the ReAuth
    view; everything else becomes a banner over the current content.
    """
    if isinstance(error, AuthExpiredError) and state.reauth_enabled:
        if state.view == View.REAUTH:
            # Already re-authenticating; other in-flight calls fail the same way.
            return Transition(state)
        attempt = state.auth_attempts + 1
        nxt = replace(
            state,
            view=View.REAUTH,
            reauth=ReAuthState(provider=error.provider, attempt=attempt),
            auth_attempts=attempt,
            confirm=None,
            loading=False,
            detail_loading=False,
            log_loading=False,
            error=None,
        )
        return Transition(nxt, (RequestDeviceCode(provider=error.provider, attempt=attempt),))
    message = _describe(error)
    if prefix:
        message = f"{prefix}: {message}"
    return Transition(replace(state, error=message))


def _leave_reauth(state: SessionState, error: Optional[str]) -> SessionState:
    return replace(
        state,
        view=View.PIPELINES,
        reauth=None,
        selected_pipeline=state.pipelines.selected,
        jobs=CursorList(),
        selected_job=None,
        steps=CursorList(),
        log=None,
        error=error,
    )


# Keys


def _on_key(state: SessionState, key: str) -> Transition:
    if state.confirm is not None:
        return _on_confirm_key(state, key)
    if key in KEYS_QUIT:
        return Transition(state, (Quit(),))
    if state.view == View.REAUTH:
        return _cancel_reauth(state)
    if key in KEYS_REFRESH:
        return Transition(replace(state, loading=True), (LoadPipelines(),))
    if state.view == View.PIPELINES:
        return _pipelines_key(state, key)
    if state.view == View.JOBS:
        return _jobs_key(state, key)
    if state.view == View.STEPS:
        return _steps_key(state, key)
    if state.view == View.LOGS:
        return _logs_key(state, key)
    return Transition(state)


def _on_confirm_key(state: SessionState, key: str) -> Transition:
    prompt = state.confirm
    cleared = replace(state, confirm=None)
    if key in KEYS_CONFIRM:
        if prompt.action == ConfirmAction.RERUN:
            return Transition(cleared, (RerunPipeline(pipeline_id=prompt.pipeline_id),))
        return Transition(cleared, (CancelPipeline(pipeline_id=prompt.pipeline_id),))
    if key in KEYS_QUIT:
        return Transition(cleared, (Quit(),))
    return Transition(cleared)


def _cancel_reauth(state: SessionState) -> Transition:
    reauth = state.reauth
    if reauth is None:
        return Transition(_leave_reauth(state, None))
    nxt = _leave_reauth(state, expired_banner(reauth.provider))
    return Transition(nxt, (CancelReAuth(attempt=reauth.attempt),))


def _prompt(state: SessionState, action: ConfirmAction, target: Optional[Pipeline]) -> Transition:
    if target is None:
        return Transition(state)
    prompt = ConfirmPrompt(action=action, pipeline_id=target.id, branch=target.branch)
    return Transition(replace(state, confirm=prompt))


def _pipelines_key(state: SessionState, key: str) -> Transition:
    if key in KEYS_DOWN or key in KEYS_UP:
        moved = state.pipelines.move_down() if key in KEYS_DOWN else state.pipelines.move_up()
        return Transition(replace(state, pipelines=moved, selected_pipeline=moved.selected))
    if key in KEYS_OPEN:
        target = state.pipelines.selected
        if target is None:
            return Transition(state)
        nxt = replace(
            state,
            view=View.JOBS,
            selected_pipeline=target,
            jobs=CursorList(),
            selected_job=None,
            steps=CursorList(),
            detail_loading=True,
        )
        return Transition(nxt, (LoadPipelineDetail(pipeline_id=target.id),))
    if key in KEYS_RERUN:
        return _prompt(state, ConfirmAction.RERUN, state.pipelines.selected)
    if key in KEYS_CANCEL:
        return _prompt(state, ConfirmAction.CANCEL, state.pipelines.selected)
    return Transition(state)


def _open_logs(state: SessionState, job: Optional[Job]) -> Transition:
    if job is None or state.log_loading:
        return Transition(state)
    return Transition(replace(state, log_loading=True), (LoadJobLogs(job_id=job.id, job_name=job.name),))


def _jobs_key(state: SessionState, key: str) -> Transition:
    if key in KEYS_DOWN:
        return Transition(replace(state, jobs=state.jobs.move_down()))
    if key in KEYS_UP:
        return Transition(replace(state, jobs=state.jobs.move_up()))
    if key in KEYS_OPEN:
        job = state.jobs.selected
        if job is None:
            return Transition(state)
        return Transition(replace(state, view=View.STEPS, selected_job=job, steps=CursorList.of(job.steps)))
    if key in KEYS_LOGS:
        return _open_logs(state, state.jobs.selected)
    if key in KEYS_BACK:
        nxt = replace(
            state,
            view=View.PIPELINES,
            selected_pipeline=state.pipelines.selected,
            jobs=CursorList(),
            selected_job=None,
            steps=CursorList(),
            detail_loading=False,
        )
        return Transition(nxt)
    if key in KEYS_RERUN:
        return _prompt(state, ConfirmAction.RERUN, state.selected_pipeline)
    if key in KEYS_CANCEL:
        return _prompt(state, ConfirmAction.CANCEL, state.selected_pipeline)
    return Transition(state)


def _steps_key(state: SessionState, key: str) -> Transition:
    if key in KEYS_DOWN:
        return Transition(replace(state, steps=state.steps.move_down()))
    if key in KEYS_UP:
        return Transition(replace(state, steps=state.steps.move_up()))
    if key in KEYS_LOGS:
        return _open_logs(state, state.selected_job)
    if key in KEYS_BACK:
        return Transition(replace(state, view=View.JOBS))
    return Transition(state)


def _logs_key(state: SessionState, key: str) -> Transition:
    log = state.log
    if log is None:
        return Transition(replace(state, view=View.PIPELINES))
    page = visible_log_lines(state.height)
    if key in KEYS_BACK:
        return Transition(replace(state, view=log.return_view, log=None))
    if key in KEYS_DOWN:
        log = log.scroll_to(log.offset + 1)
    elif key in KEYS_UP:
        log = log.scroll_to(log.offset - 1)
    elif key in KEYS_PAGE_DOWN:
        log = log.scroll_to(log.offset + page)
    elif key in KEYS_PAGE_UP:
        log = log.scroll_to(log.offset - page)
    elif key in KEYS_TOP:
        log = log.scroll_to(0)
    elif key in KEYS_BOTTOM:
        log = log.scroll_to(log.max_offset)
    else:
        return Transition(state)
    return Transition(replace(state, log=log))


# Timer


def _on_tick(state: SessionState) -> Transition:
    commands = [LoadPipelines()]
    selected = state.selected_pipeline
    if state.view in (View.JOBS, View.STEPS, View.LOGS) and selected is not None and selected.is_running:
        commands.append(LoadPipelineDetail(pipeline_id=selected.id))
    commands.append(ScheduleTick(next_tick_interval(state.pipelines.items)))
    return Transition(state, tuple(commands))


# Results


def _pipeline_id(pipeline: Pipeline) -> str:
    return pipeline.id


def _job_id(job: Job) -> str:
    return job.id


def _find(items, ident: str):
    for item in items:
        if item.id == ident:
            return item
    return None


def _on_pipelines(state: SessionState, msg: PipelinesLoaded) -> Transition:
    state = replace(state, loading=False)
    if msg.error is not None:
        return _failed(state, msg.error)
    pipelines = state.pipelines.refresh(msg.pipelines, key=_pipeline_id)
    selected = state.selected_pipeline
    if state.view == View.PIPELINES or selected is None:
        selected = pipelines.selected
    else:
        # Keep the drilled-in snapshot when the pipeline dropped out of the list.
        fresh = _find(pipelines.items, selected.id)
        if fresh is not None:
            selected = replace(fresh, jobs=selected.jobs)
    return Transition(replace(state, pipelines=pipelines, selected_pipeline=selected, error=None))


def _on_detail(state: SessionState, msg: PipelineDetailLoaded) -> Transition:
    selected = state.selected_pipeline
    if state.view not in (View.JOBS, View.STEPS, View.LOGS):
        return Transition(state)
    if selected is None or selected.id != msg.pipeline_id:
        return Transition(state)
    state = replace(state, detail_loading=False)
    if msg.error is not None:
        return _failed(state, msg.error)
    pipeline = msg.pipeline
    if pipeline is None:
        return Transition(state)
    jobs = state.jobs.refresh(pipeline.jobs, key=_job_id)
    selected_job = state.selected_job
    steps = state.steps
    if selected_job is not None:
        fresh = _find(pipeline.jobs, selected_job.id)
        if fresh is not None:
            selected_job = fresh
            steps = steps.refresh(fresh.steps)
    nxt = replace(
        state,
        selected_pipeline=pipeline,
        jobs=jobs,
        selected_job=selected_job,
        steps=steps,
        error=None,
    )
    return Transition(nxt)


def _on_logs(state: SessionState, msg: LogsLoaded) -> Transition:
    if not state.log_loading:
        return Transition(state)
    state = replace(state, log_loading=False)
    if msg.error is not None:
        return _failed(state, msg.error, prefix=f"logs for {msg.job_name}")
    if state.view not in (View.JOBS, View.STEPS):
        return Transition(state)
    log = LogViewer(job_id=msg.job_id, job_name=msg.job_name, content=msg.content, return_view=state.view)
    return Transition(replace(state, view=View.LOGS, log=log))


def _on_action(state: SessionState, msg: ActionCompleted) -> Transition:
    if msg.error is not None:
        return _failed(state, msg.error, prefix=f"{msg.action} failed")
    return Transition(replace(state, loading=True, error=None), (LoadPipelines(),))


def _current_attempt(state: SessionState, attempt: int) -> bool:
    return state.view == View.REAUTH and state.reauth is not None and state.reauth.attempt == attempt


def _on_device_code(state: SessionState, msg: DeviceCodeReceived) -> Transition:
    if not _current_attempt(state, msg.attempt):
        return Transition(state)
    if msg.error is not None or msg.code is None:
        reason = _describe(msg.error) if msg.error is not None else "no device code returned"
        nxt = _leave_reauth(state, f"re-authentication failed: {reason}")
        return Transition(nxt, (CancelReAuth(attempt=msg.attempt),))
    code = msg.code
    deadline = msg.requested_at + code.expires_in if code.expires_in > 0 else None
    nxt = replace(state, reauth=replace(state.reauth, code=code))
    poll = PollDeviceToken(
        provider=msg.provider,
        attempt=msg.attempt,
        device_code=code.device_code,
        interval=code.interval,
        deadline=deadline,
    )
    return Transition(nxt, (poll,))


def _on_reauth_completed(state: SessionState, msg: ReAuthCompleted) -> Transition:
    if not _current_attempt(state, msg.attempt):
        return Transition(state)
    if msg.error is not None or msg.token is None:
        reason = _describe(msg.error) if msg.error is not None else "no token returned"
        nxt = _leave_reauth(state, f"re-authentication failed: {reason}")
        return Transition(nxt, (CancelReAuth(attempt=msg.attempt),))
    nxt = replace(_leave_reauth(state, None), loading=True)
    return Transition(nxt, (SaveToken(provider=msg.provider, token=msg.token), LoadPipelines()))
