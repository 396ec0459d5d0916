from __future__ import annotations

import logging

import pytest

from app.core.logging import _ContainerFormatter, setup_logging


def _record(level: int, msg: str = "hello", *, path: str = "runner.py", line: int = 1):
    return logging.LogRecord(
        name="app.services.snapshot_runner",
        level=level,
        pathname=path,
        lineno=line,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.mark.parametrize(
    "name,expected",
    [("debug", logging.DEBUG), ("warning", logging.WARNING), ("bogus", logging.INFO)],
)
def test_setup_logging_sets_root_level(name: str, expected: int) -> None:
    setup_logging(name)
    assert logging.getLogger().level == expected


@pytest.mark.parametrize("noisy", ["uvicorn", "httpx", "sqlalchemy.engine"])
def test_third_party_loggers_held_at_warning(noisy: str) -> None:
    setup_logging("debug")
    assert logging.getLogger(noisy).level == logging.WARNING
    setup_logging("error")
    assert logging.getLogger(noisy).level == logging.ERROR


def test_info_lines_have_no_location() -> None:
    output = _ContainerFormatter().format(_record(logging.INFO, "run started"))
    assert "run started" in output
    assert "[runner.py:" not in output


@pytest.mark.parametrize("level", [logging.WARNING, logging.ERROR])
def test_warning_and_above_carry_location(level: int) -> None:
    output = _ContainerFormatter().format(
        _record(level, "pair failed", path="runner.py", line=42)
    )
    assert "pair failed" in output
    assert "[runner.py:42]" in output
