from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _isolated_backend_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "WMSYNC_EMAIL",
        "WMSYNC_PASSWORD",
        "WMSYNC_PROBE_MAX_ATTEMPTS",
        "WMSYNC_PROBE_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
