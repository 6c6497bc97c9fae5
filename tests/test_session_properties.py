"""
Property-based tests for the session state machine.

Covers cursor bounds under arbitrary navigation, identity-preserving list
refresh, the auto-refresh cadence and log offset clamping.
"""

from hypothesis import given, settings, strategies as st

from pipedeck.cli.lists import CursorList
from pipedeck.cli.messages import Key, LogsLoaded, PipelineDetailLoaded, PipelinesLoaded, Resize, Tick
from pipedeck.cli.state import View, handle, initial_state, next_tick_interval, visible_log_lines
from pipedeck.domain import Job, Pipeline, PipelineStatus

status_strategy = st.sampled_from(list(PipelineStatus))
id_strategy = st.text(alphabet="0123456789", min_size=1, max_size=4)

pipelines_strategy = st.lists(
    st.builds(Pipeline, id=id_strategy, status=status_strategy),
    max_size=12,
    unique_by=lambda p: p.id,
)

nav_keys = st.lists(st.sampled_from(["up", "down", "k", "j"]), max_size=40)
log_keys = st.lists(
    st.sampled_from(["up", "down", "pageup", "pagedown", "g", "G", "home", "end"]),
    max_size=40,
)


def _assert_in_bounds(cursor_list: CursorList) -> None:
    if cursor_list.is_empty:
        assert cursor_list.cursor == 0
    else:
        assert 0 <= cursor_list.cursor <= len(cursor_list) - 1


@settings(max_examples=100, deadline=None)
@given(pipelines=pipelines_strategy, keys=nav_keys)
def test_pipeline_cursor_always_in_bounds(pipelines, keys) -> None:
    state = handle(initial_state(), PipelinesLoaded(pipelines=tuple(pipelines))).state
    for key in keys:
        state = handle(state, Key(key)).state
        _assert_in_bounds(state.pipelines)


@settings(max_examples=100, deadline=None)
@given(
    jobs=st.lists(st.builds(Job, id=id_strategy, name=st.text(max_size=8), status=status_strategy), max_size=10, unique_by=lambda j: j.id),
    keys=nav_keys,
)
def test_job_cursor_always_in_bounds(jobs, keys) -> None:
    state = handle(initial_state(), PipelinesLoaded(pipelines=(Pipeline(id="1", status=PipelineStatus.SUCCESS),))).state
    state = handle(state, Key("enter")).state
    detail = Pipeline(id="1", status=PipelineStatus.SUCCESS, jobs=tuple(jobs))
    state = handle(state, PipelineDetailLoaded(pipeline_id="1", pipeline=detail)).state
    for key in keys:
        state = handle(state, Key(key)).state
        _assert_in_bounds(state.jobs)


@settings(max_examples=100, deadline=None)
@given(before=pipelines_strategy, after=pipelines_strategy, moves=st.integers(min_value=0, max_value=12))
def test_list_refresh_preserves_identity_or_resets(before, after, moves) -> None:
    state = handle(initial_state(), PipelinesLoaded(pipelines=tuple(before))).state
    for _ in range(moves):
        state = handle(state, Key("down")).state
    selected = state.pipelines.selected
    state = handle(state, PipelinesLoaded(pipelines=tuple(after))).state
    _assert_in_bounds(state.pipelines)
    after_ids = [p.id for p in after]
    if selected is not None and selected.id in after_ids:
        assert state.pipelines.selected.id == selected.id
    else:
        assert state.pipelines.cursor == 0


@settings(max_examples=100, deadline=None)
@given(pipelines=pipelines_strategy)
def test_tick_interval_is_five_or_thirty(pipelines) -> None:
    expected = 5 if any(p.status == PipelineStatus.RUNNING for p in pipelines) else 30
    assert next_tick_interval(pipelines) == expected
    state = handle(initial_state(), PipelinesLoaded(pipelines=tuple(pipelines))).state
    assert handle(state, Tick()).commands[-1].seconds == expected


@settings(max_examples=100, deadline=None)
@given(
    line_count=st.integers(min_value=1, max_value=200),
    height=st.integers(min_value=1, max_value=80),
    keys=log_keys,
)
def test_log_offset_clamped(line_count, height, keys) -> None:
    state = handle(initial_state(), PipelinesLoaded(pipelines=(Pipeline(id="1", status=PipelineStatus.SUCCESS),))).state
    state = handle(state, Resize(width=80, height=height)).state
    state = handle(state, Key("enter")).state
    detail = Pipeline(id="1", status=PipelineStatus.SUCCESS, jobs=(Job(id="j", name="build", status=PipelineStatus.SUCCESS),))
    state = handle(state, PipelineDetailLoaded(pipeline_id="1", pipeline=detail)).state
    state = handle(state, Key("l")).state
    content = "\n".join(str(i) for i in range(line_count))
    state = handle(state, LogsLoaded(job_id="j", job_name="build", content=content)).state
    assert state.view == View.LOGS

    page = visible_log_lines(height)
    for key in keys:
        previous = state.log.offset
        state = handle(state, Key(key)).state
        offset = state.log.offset
        assert 0 <= offset <= line_count - 1
        if key == "pagedown":
            assert offset == min(previous + page, line_count - 1)
        if key == "pageup":
            assert offset == max(previous - page, 0)
