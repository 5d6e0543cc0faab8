"""Output helpers for the raidbot CLI.

Commands print either human-readable text or, with ``--json``, the raw
JSON payload. Failures exit with status 1.
"""

import json
from typing import Any, NoReturn

import click


def emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def emit_success(data: Any, *, as_json: bool, text: str) -> None:
    """Print ``data`` as JSON or ``text`` for humans."""
    if as_json:
        emit_json(data)
    else:
        click.echo(text)


def emit_error(message: str, *, data: Any = None, as_json: bool = False) -> NoReturn:
    """Print an error and exit with status 1."""
    if as_json and data is not None:
        emit_json(data)
    else:
        click.secho(f"Error: {message}", fg="red", err=True)
    raise SystemExit(1)
