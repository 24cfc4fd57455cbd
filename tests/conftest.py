from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

import pytest

from tests._fixtures.fakes import NOW
from workstate.models import WorkUnit

_ENV_KEYS = (
    "WORKSTATE_LLM_MODEL",
    "WORKSTATE_LLM_BASE_URL",
    "WORKSTATE_API_KEY",
    "OPENROUTER_API_KEY",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer credentials from leaking into configuration tests."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_unit() -> Callable[..., WorkUnit]:
    def _make(
        unit_id: str,
        title: str = "Untitled",
        content: str | None = None,
        *,
        age: timedelta = timedelta(days=5),
        **kwargs: object,
    ) -> WorkUnit:
        return WorkUnit(id=unit_id, title=title, content=content, updated_at=NOW - age, **kwargs)  # type: ignore[arg-type]

    return _make
