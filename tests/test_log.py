from __future__ import annotations

import logging

import pytest
from loguru import logger

from wrangler.log import _InterceptHandler, stderr_level


@pytest.mark.parametrize(
    ("env", "level"),
    [
        ({}, "INFO"),
        ({"LOG_LEVEL": "DEBUG"}, "DEBUG"),
        ({"LOGURU_LEVEL": "TRACE", "LOG_LEVEL": "DEBUG"}, "TRACE"),
    ],
)
def test_stderr_level(
    monkeypatch: pytest.MonkeyPatch, env: dict[str, str], level: str
) -> None:
    monkeypatch.delenv("LOGURU_LEVEL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    assert stderr_level() == level


def test_stdlib_records_reach_loguru() -> None:
    messages: list[str] = []
    sink = logger.add(messages.append, format="{function}:{level}:{message}")
    stdlib = logging.getLogger("wrangler.tests")
    handler = _InterceptHandler()
    stdlib.addHandler(handler)
    try:
        stdlib.warning("server said %s", "no")
    finally:
        stdlib.removeHandler(handler)
        logger.remove(sink)

    assert messages == ["test_stdlib_records_reach_loguru:WARNING:server said no\n"]
