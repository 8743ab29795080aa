from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _no_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep a developer's .env from leaking secrets into config tests.
    monkeypatch.setattr("pastescope.settings.load_dotenv", lambda *args, **kwargs: False)
