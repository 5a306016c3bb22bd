"""Render command results as rich tables or JSON."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import rich_click as click
from rich.console import Console
from rich.table import Table

from pulsecheck.models import OutputFormat


@dataclass(slots=True)
class TableView:
    """Rows to print in table mode; ``payload`` is what JSON mode prints instead."""

    title: str
    columns: Sequence[str]
    rows: Sequence[Sequence[Any]]
    payload: Any


class Renderer:
    def __init__(self, *, output_format: OutputFormat, color: bool) -> None:
        self.output_format = output_format
        self.color = color

    def table(self, view: TableView) -> None:
        if self.output_format is OutputFormat.JSON:
            self.json(view.payload)
            return
        table = Table(title=view.title)
        for index, column in enumerate(view.columns):
            table.add_column(
                column,
                style="bright_green" if index == 0 else None,
                no_wrap=index == 0,
            )
        for row in view.rows:
            table.add_row(*("-" if cell is None else str(cell) for cell in row))
        self._console().print(table)

    def json(self, payload: Any) -> None:
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True))

    def message(self, text: str, *, payload: Any = None) -> None:
        """Human line in table mode, ``payload`` (if given) in JSON mode."""

        if self.output_format is OutputFormat.JSON and payload is not None:
            self.json(payload)
            return
        click.echo(text)

    def _console(self) -> Console:
        return Console(no_color=not self.color, highlight=False, soft_wrap=False)
