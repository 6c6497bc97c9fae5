"""Plain-text rendering of a SessionState. Pure functions, no terminal access."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pipedeck.cli.state import ConfirmAction, SessionState, View, visible_log_lines
from pipedeck.domain import PipelineStatus, Repository

SEPARATOR = "─" * 60

STATUS_ICONS = {
    PipelineStatus.SUCCESS: "✓",
    PipelineStatus.FAILED: "✗",
    PipelineStatus.RUNNING: "●",
    PipelineStatus.PENDING: "↷",
    PipelineStatus.CANCELLED: "○",
}

FOOTER_PIPELINES = " ↑/↓: navigate   enter: open   ctrl+r: refresh   r: rerun   x: cancel   q: quit"
FOOTER_JOBS = " ↑/↓: navigate   enter: steps   l: logs   esc: back   r: rerun   x: cancel   q: quit"
FOOTER_STEPS = " ↑/↓: navigate   l: logs   esc: back   q: quit"
FOOTER_LOGS = " ↑/↓: scroll   PgUp/PgDn: page   g/G: top/bottom   esc: back"
FOOTER_REAUTH = " Press ESC to cancel   q: quit"


def status_icon(status) -> str:
    return STATUS_ICONS.get(status, "?")


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 1:
        return text[:limit]
    return text[: limit - 1] + "…"


def format_age(created_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    if created_at is None:
        return "--"
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = max(int((now - created_at).total_seconds()), 0)
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    return f"{seconds // 3600}h ago"


def format_duration(duration: timedelta) -> str:
    seconds = int(duration.total_seconds())
    if seconds <= 0:
        return "--"
    return f"{seconds}s"


def short_sha(sha: str) -> str:
    return sha[:7]


def first_line(text: str) -> str:
    return text.split("\n", 1)[0]


def _header(state: SessionState, repo: Repository) -> str:
    selected = state.selected_pipeline
    if selected is None:
        return f" pipedeck | {repo.slug}"
    return (
        f" pipedeck | {repo.name} / ⎇ {selected.branch} {short_sha(selected.commit_sha)}"
        f" / {first_line(selected.commit_message)}"
    )


def _confirm_line(state: SessionState) -> Optional[str]:
    prompt = state.confirm
    if prompt is None:
        return None
    verb = "Rerun" if prompt.action == ConfirmAction.RERUN else "Cancel"
    return f" {verb} pipeline #{prompt.pipeline_id} on {prompt.branch}? [y/N]"


def _error_lines(state: SessionState) -> List[str]:
    if not state.error:
        return []
    return [f" Error: {state.error}", " Press 'ctrl+r' to retry or 'q' to quit.", SEPARATOR]


def _pipeline_rows(state: SessionState, now: Optional[datetime]) -> List[str]:
    if state.pipelines.is_empty:
        return ["Loading pipelines..." if state.loading else "No pipelines found."]
    rows = []
    for idx, pipeline in enumerate(state.pipelines.items):
        prefix = "> " if idx == state.pipelines.cursor else "  "
        rows.append(
            f"{prefix}{status_icon(pipeline.status)} #{pipeline.id} "
            f"{truncate(pipeline.branch, 20):<20} {format_age(pipeline.created_at, now)}"
        )
    return rows


def _job_rows(state: SessionState) -> List[str]:
    if state.jobs.is_empty:
        return ["Loading jobs..." if state.detail_loading else "No jobs found."]
    rows = []
    for idx, job in enumerate(state.jobs.items):
        prefix = "> " if idx == state.jobs.cursor else "  "
        rows.append(f"{prefix}{status_icon(job.status)} {truncate(job.name, 25):<25} {format_duration(job.duration)}")
    return rows


def _step_rows(state: SessionState) -> List[str]:
    if state.steps.is_empty:
        return ["No steps found."]
    rows = []
    for idx, step in enumerate(state.steps.items):
        prefix = "> " if idx == state.steps.cursor else "  "
        rows.append(f"{prefix}{status_icon(step.status)} {truncate(step.name, 25):<25} {format_duration(step.duration)}")
    return rows


def render_logs(state: SessionState, repo: Repository) -> str:
    log = state.log
    lines = [f" pipedeck  {repo.slug}  [logs] {log.job_name if log else ''}", SEPARATOR]
    lines.extend(_error_lines(state))
    if log is not None:
        content = log.lines
        start = min(max(log.offset, 0), len(content) - 1)
        lines.extend(content[start : start + visible_log_lines(state.height)])
    lines.extend([SEPARATOR, FOOTER_LOGS])
    return "\n".join(lines)


def render_reauth(state: SessionState) -> str:
    reauth = state.reauth
    provider = reauth.provider if reauth else "provider"
    lines = [" pipedeck | Re-authentication Required", SEPARATOR, "", f" Session expired for {provider}.", ""]
    if reauth is None or reauth.code is None:
        lines.append(" Requesting authorization...")
    else:
        lines.extend(
            [
                f" Visit:  {reauth.code.verification_uri}",
                f" Code:   {reauth.code.user_code}",
                "",
                " Waiting for authorization...",
            ]
        )
    lines.extend(["", SEPARATOR, FOOTER_REAUTH])
    return "\n".join(lines)


def render(state: SessionState, repo: Repository, now: Optional[datetime] = None) -> str:
    """Render the whole screen for the current view."""
    if state.view == View.REAUTH:
        return render_reauth(state)
    if state.view == View.LOGS:
        return render_logs(state, repo)

    lines = [_header(state, repo), SEPARATOR]
    lines.extend(_error_lines(state))
    if state.view == View.PIPELINES:
        lines.append(" Pipelines")
        lines.extend(_pipeline_rows(state, now))
        footer = FOOTER_PIPELINES
        selected = state.pipelines.selected
        if selected is not None:
            lines.extend(["", SEPARATOR, f" #{selected.id} by {selected.author or '-'}"])
    elif state.view == View.JOBS:
        pipeline_id = state.selected_pipeline.id if state.selected_pipeline else "-"
        lines.append(f" Jobs for Pipeline #{pipeline_id}")
        lines.extend(_job_rows(state))
        footer = FOOTER_JOBS
    else:
        job_name = state.selected_job.name if state.selected_job else "-"
        lines.append(f" Steps for Job: {job_name}")
        lines.extend(_step_rows(state))
        footer = FOOTER_STEPS
    if state.log_loading:
        lines.append(" Loading logs...")
    lines.extend([SEPARATOR, _confirm_line(state) or footer])
    return "\n".join(lines)
