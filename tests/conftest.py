import os
import sys

import pytest

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

_PROVIDER_ENV = (
    "GOOGLE_MAPS_API_KEY",
    "GOOGLE_PLACES_API_KEY",
    "GOOGLE_CUSTOM_SEARCH_ID",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_VISION_MODEL",
    "PERPLEXITY_API_KEY",
    "APOLLO_API_KEY",
    "SCORE_JITTER",
    "SCORE_SEED",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Fresh SQLite file per test and no provider keys from the host environment."""
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SALES_INTEL_DB_PATH", str(tmp_path / "test.db"))
    from sales_intel.db import init_db
    init_db()
    yield


@pytest.fixture
def settings():
    from sales_intel.config import Settings
    return Settings(
        google_maps_api_key="maps-key",
        ai_api_key="sk-test",
        enrichment_api_key="apollo-key",
    )
