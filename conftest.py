from __future__ import annotations

import pytest

from sqlhandle.config import parser


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep cached configuration and SQLHANDLE_* variables from leaking between tests."""
    for name in ("SQLHANDLE_CONFIG_FILE", "SQLHANDLE_LOG_LEVEL", "SQLHANDLE_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(parser, "_loaded_config", None)
