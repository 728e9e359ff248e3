"""Fixtures for CLI interface tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner, Result

from quire.cli import cli

Invoke = Callable[..., Result]


@pytest.fixture
def invoke(quire_home: Path, cli_runner: CliRunner) -> Invoke:
    """Run the CLI against an isolated QUIRE_HOME."""

    def _invoke(*args: str) -> Result:
        return cli_runner.invoke(cli, list(args))

    return _invoke


@pytest.fixture
def create_ticket(invoke: Invoke) -> Callable[..., dict[str, Any]]:
    """Create a ticket through the CLI and return its JSON record."""

    def _create(title: str, project: str = "web", *extra: str) -> dict[str, Any]:
        result = invoke("create", "--title", title, "--project", project, "--json", *extra)
        assert result.exit_code == 0, result.output
        record: dict[str, Any] = json.loads(result.output)
        return record

    return _create
