"""Render dispatched events as one line of text each."""

from __future__ import annotations

from typing import IO

import click

from kubemirror.models.objects import EventKind, WatchEvent

_LABELS = {
    EventKind.ADDED: "[ADDED]  ",
    EventKind.UPDATED: "[UPDATED]",
    EventKind.DELETED: "[DELETED]",
}


def format_event(event: WatchEvent) -> str:
    """Format *event* for the terminal.

    Example output::

        [ADDED]   default/web-0  (phase=Pending)
        [DELETED] default/web-0
    """
    line = f"{_LABELS[event.kind]} {event.key}"
    if event.kind is not EventKind.DELETED:
        phase = event.obj.phase
        if phase:
            line += f"  (phase={phase})"
    return line


class EventPrinter:
    """Observer that prints every event it receives."""

    def __init__(self, file: IO[str] | None = None) -> None:
        self._file = file

    def __call__(self, event: WatchEvent) -> None:
        click.echo(format_event(event), file=self._file)
