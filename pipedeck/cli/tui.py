from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Iterable, Optional

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.css.query import NoMatches
from textual.timer import Timer
from textual.widgets import Static

from pipedeck.cli import messages
from pipedeck.cli.render import render
from pipedeck.cli.runner import CommandRunner
from pipedeck.cli.state import SessionState, Transition, handle, initial_state, start
from pipedeck.domain import Repository
from pipedeck.logging import get_logger, log_extra

log = get_logger("pipedeck.cli.tui")


def key_name(key: str, character: Optional[str]) -> str:
    """Printable keys are matched by character (so "G" stays distinct from "g")."""
    if character and len(character) == 1 and character.isprintable() and not character.isspace():
        return character
    return key


class PipedeckApp(App):
    """
    Textual host for the session state machine.

    The app owns the only SessionState. Keys, resizes, timer ticks and command
    results are all fed through handle() on the event loop; network commands
    run on worker threads and post their result back here.
    """

    CSS = """
    Screen { layout: vertical; }
    #screen { height: 1fr; padding: 0 1; }
    """

    BINDINGS = [
        Binding("ctrl+c", "session_key('ctrl+c')", "Quit", show=False, priority=True),
        Binding("ctrl+r", "session_key('ctrl+r')", "Refresh", show=False, priority=True),
    ]
    TITLE = "pipedeck"

    def __init__(self, runner: CommandRunner, repo: Repository, reauth_enabled: bool = True) -> None:
        super().__init__()
        self.runner = runner
        self.repo = repo
        self.state: SessionState = initial_state(reauth_enabled=reauth_enabled)
        self._tick_timer: Optional[Timer] = None

    def compose(self) -> ComposeResult:
        yield Static("Loading pipelines...", id="screen", markup=False)

    def on_mount(self) -> None:
        self.sub_title = self.repo.slug
        self.state = replace(self.state, width=self.size.width, height=self.size.height)
        log.info("session_start", extra=log_extra(repo=self.repo.slug))
        self._apply(start(self.state))

    def on_unmount(self) -> None:
        self.runner.cancel_all()

    # Input

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.feed(messages.Key(key_name(event.key, event.character)))

    def on_resize(self, event: events.Resize) -> None:
        self.feed(messages.Resize(width=event.size.width, height=event.size.height))

    def action_session_key(self, key: str) -> None:
        self.feed(messages.Key(key))

    def _on_tick_timer(self) -> None:
        self._tick_timer = None
        self.feed(messages.Tick())

    # State

    def feed(self, event: messages.Event) -> None:
        self._apply(handle(self.state, event))

    def _apply(self, transition: Transition) -> None:
        self.state = transition.state
        self._paint()
        self._run_commands(transition.commands)

    def _paint(self) -> None:
        try:
            screen = self.query_one("#screen", Static)
        except NoMatches:
            return
        screen.update(render(self.state, self.repo))

    # Commands

    def _run_commands(self, commands: Iterable[messages.Command]) -> None:
        for command in commands:
            if isinstance(command, messages.Quit):
                log.info("session_quit")
                self.runner.cancel_all()
                self.exit()
                return
            if isinstance(command, messages.ScheduleTick):
                if self._tick_timer is not None:
                    self._tick_timer.stop()
                self._tick_timer = self.set_timer(command.seconds, self._on_tick_timer)
                continue
            if isinstance(command, (messages.CancelReAuth, messages.SaveToken)):
                # Local commands run inline; a SaveToken installs the token
                # before any reload issued after it is started.
                self.runner.execute(command)
                continue
            self.run_worker(self._execute(command), group="commands", exit_on_error=False)

    async def _execute(self, command: messages.Command) -> None:
        result = await asyncio.to_thread(self.runner.execute, command)
        if result is not None:
            self.feed(result)
