"""Echo the digest to the terminal."""

from __future__ import annotations

from collections.abc import Callable

import rich_click as click

from hn_digest.publishers.base import DigestContent

SEPARATOR = "=" * 38


def format_terminal_output(content: DigestContent) -> str:
    return "\n".join(
        [
            SEPARATOR,
            f"HackerNews Daily - {content.task_date}",
            SEPARATOR,
            "",
            content.document,
            "",
            SEPARATOR,
            f"Export completed: {len(content.stories)} stories",
            SEPARATOR,
        ],
    )


class TerminalPublisher:
    name = "terminal"

    def __init__(self, *, emit: Callable[[str], None] = click.echo) -> None:
        self._emit = emit

    def publish(self, content: DigestContent) -> None:
        self._emit(format_terminal_output(content))
