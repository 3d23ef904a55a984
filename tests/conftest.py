from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in (
        "CLIENTS",
        "COC_BASE_URL",
        "COC_PAGE_SIZE",
        "FB_API_VERSION",
        "INSIGHT_SPEND_FLOOR",
        "INSIGHT_THRESHOLD_PCT",
    ):
        monkeypatch.delenv(key, raising=False)
