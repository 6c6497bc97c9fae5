from datetime import datetime, timedelta, timezone

from pipedeck.auth.device import DeviceCodeResponse
from pipedeck.cli.messages import DeviceCodeReceived, Key, LogsLoaded, PipelineDetailLoaded, PipelinesLoaded, Resize
from pipedeck.cli.render import first_line, format_age, format_duration, render, short_sha, status_icon, truncate
from pipedeck.cli.state import handle, initial_state
from pipedeck.domain import Job, Pipeline, PipelineStatus, Repository, Step
from pipedeck.errors import AuthExpiredError, ProviderAPIError

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_helpers() -> None:
    assert status_icon(PipelineStatus.SUCCESS) == "✓"
    assert status_icon(PipelineStatus.FAILED) == "✗"
    assert status_icon(PipelineStatus.RUNNING) == "●"
    assert status_icon("weird") == "?"
    assert truncate("feature/very-long-branch-name", 10) == "feature/v…"
    assert truncate("main", 10) == "main"
    assert format_age(None) == "--"
    assert format_age(NOW - timedelta(seconds=30), NOW) == "30s ago"
    assert format_age(NOW - timedelta(minutes=5), NOW) == "5m ago"
    assert format_age(NOW - timedelta(hours=3), NOW) == "3h ago"
    assert format_duration(timedelta(0)) == "--"
    assert format_duration(timedelta(seconds=95)) == "95s"
    assert short_sha("0123456789") == "0123456"
    assert first_line("subject\n\nbody") == "subject"


def _state(*pipelines):
    return handle(initial_state(), PipelinesLoaded(pipelines=tuple(pipelines))).state


def test_pipelines_view(repo: Repository) -> None:
    state = _state(
        Pipeline(
            id="12",
            status=PipelineStatus.RUNNING,
            branch="main",
            commit_sha="abcdef1234",
            commit_message="Add cache\n\nDetails",
            author="Dana",
            created_at=NOW - timedelta(minutes=2),
        ),
        Pipeline(id="11", status=PipelineStatus.FAILED, branch="dev"),
    )
    screen = render(state, repo, now=NOW)
    assert "pipedeck | api / ⎇ main abcdef1 / Add cache" in screen
    assert "> ● #12 main" in screen
    assert "2m ago" in screen
    assert "  ✗ #11 dev" in screen
    assert "#12 by Dana" in screen
    assert "r: rerun" in screen


def test_empty_and_loading(repo: Repository) -> None:
    assert "Loading pipelines..." in render(initial_state(), repo)
    assert "No pipelines found." in render(_state(), repo)


def test_confirm_prompt_uses_captured_target(repo: Repository) -> None:
    state = _state(Pipeline(id="1042", status=PipelineStatus.SUCCESS, branch="release"))
    state = handle(state, Key("r")).state
    state = handle(state, PipelinesLoaded(pipelines=(Pipeline(id="2000", status=PipelineStatus.SUCCESS, branch="x"),))).state
    assert "Rerun pipeline #1042 on release? [y/N]" in render(state, repo)


def test_error_banner_keeps_content(repo: Repository) -> None:
    state = _state(Pipeline(id="1", status=PipelineStatus.SUCCESS, branch="main"))
    state = handle(state, PipelinesLoaded(error=ProviderAPIError("github API error: 502 Bad Gateway"))).state
    screen = render(state, repo)
    assert "Error: github API error: 502 Bad Gateway" in screen
    assert "ctrl+r" in screen
    assert "#1 main" in screen


def test_jobs_and_steps_views(repo: Repository) -> None:
    job = Job(
        id="7",
        name="build",
        status=PipelineStatus.SUCCESS,
        duration=timedelta(seconds=12),
        steps=(Step("checkout", PipelineStatus.SUCCESS, timedelta(seconds=2)),),
    )
    state = _state(Pipeline(id="5", status=PipelineStatus.SUCCESS))
    state = handle(state, Key("enter")).state
    assert "Loading jobs..." in render(state, repo)
    state = handle(
        state, PipelineDetailLoaded(pipeline_id="5", pipeline=Pipeline(id="5", status=PipelineStatus.SUCCESS, jobs=(job,)))
    ).state
    screen = render(state, repo)
    assert "Jobs for Pipeline #5" in screen
    assert "> ✓ build" in screen
    assert "12s" in screen

    state = handle(state, Key("enter")).state
    screen = render(state, repo)
    assert "Steps for Job: build" in screen
    assert "> ✓ checkout" in screen


def test_log_view_window(repo: Repository) -> None:
    state = _state(Pipeline(id="5", status=PipelineStatus.SUCCESS))
    state = handle(state, Resize(width=80, height=14)).state
    state = handle(state, Key("enter")).state
    job = Job(id="7", name="build", status=PipelineStatus.SUCCESS)
    state = handle(state, PipelineDetailLoaded(pipeline_id="5", pipeline=Pipeline(id="5", status=PipelineStatus.SUCCESS, jobs=(job,)))).state
    state = handle(state, Key("l")).state
    state = handle(state, LogsLoaded(job_id="7", job_name="build", content="\n".join(f"row {i}" for i in range(40)))).state
    state = handle(state, Key("pagedown")).state

    screen = render(state, repo)
    assert "[logs] build" in screen
    assert "row 10" in screen
    assert "row 19" in screen
    assert "row 9\n" not in screen
    assert "row 20" not in screen


def test_reauth_view(repo: Repository) -> None:
    state = _state(Pipeline(id="1", status=PipelineStatus.SUCCESS))
    state = handle(state, PipelinesLoaded(error=AuthExpiredError("gitlab"))).state
    assert "Requesting authorization..." in render(state, repo)

    code = DeviceCodeResponse("dev", "WXYZ-9876", "https://gitlab.com/oauth/device", 600, 5)
    state = handle(state, DeviceCodeReceived(provider="gitlab", attempt=1, code=code, requested_at=0.0)).state
    screen = render(state, repo)
    assert "Session expired for gitlab." in screen
    assert "Visit:  https://gitlab.com/oauth/device" in screen
    assert "Code:   WXYZ-9876" in screen
