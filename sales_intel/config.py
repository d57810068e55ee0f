"""
Runtime configuration.

Provider keys come from the environment (a project-root .env is loaded via
python-dotenv) and are overridden by values saved through the settings API.
"""

import os
import logging
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Optional

from dotenv import load_dotenv

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(_PROJECT_ROOT, ".env"))

DEFAULT_AI_MODEL = "gpt-4o-mini"
DEFAULT_VISION_MODEL = "gpt-4o"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Keys accepted by POST /settings
SETTINGS_KEYS = (
    "enrichment_api_key",
    "ai_provider",
    "ai_api_key",
    "ai_model",
    "google_maps_api_key",
    "google_custom_search_id",
    "perplexity_api_key",
    "business_profile",
)


@dataclass
class Settings:
    google_maps_api_key: Optional[str] = None
    google_custom_search_id: Optional[str] = None
    ai_provider: str = "openai"
    ai_api_key: Optional[str] = None
    ai_model: str = DEFAULT_AI_MODEL
    vision_model: str = DEFAULT_VISION_MODEL
    perplexity_api_key: Optional[str] = None
    enrichment_api_key: Optional[str] = None
    business_profile: Optional[Dict[str, Any]] = None
    score_jitter: bool = False
    score_seed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def masked(self) -> Dict[str, Any]:
        """Settings for display: secrets reduced to a short prefix. The Maps key stays visible for map embeds."""
        out = self.to_dict()
        for key in ("ai_api_key", "perplexity_api_key", "enrichment_api_key"):
            if out.get(key):
                out[key] = out[key][:4] + "..."
        return out


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> Optional[int]:
    val = os.getenv(name)
    try:
        return int(val) if val not in (None, "") else None
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-integer %s=%r", name, val)
        return None


def settings_from_env() -> Settings:
    return Settings(
        google_maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY") or os.getenv("GOOGLE_PLACES_API_KEY"),
        google_custom_search_id=os.getenv("GOOGLE_CUSTOM_SEARCH_ID"),
        ai_api_key=os.getenv("OPENAI_API_KEY"),
        ai_model=os.getenv("OPENAI_MODEL", DEFAULT_AI_MODEL),
        vision_model=os.getenv("OPENAI_VISION_MODEL", DEFAULT_VISION_MODEL),
        perplexity_api_key=os.getenv("PERPLEXITY_API_KEY"),
        enrichment_api_key=os.getenv("APOLLO_API_KEY"),
        score_jitter=_env_bool("SCORE_JITTER"),
        score_seed=_env_int("SCORE_SEED"),
    )


def get_settings(overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """Environment settings with saved workspace settings layered on top."""
    settings = settings_from_env()
    if overrides is None:
        from .db import get_saved_settings
        overrides = get_saved_settings()
    known = {f.name for f in fields(Settings)}
    for key, value in (overrides or {}).items():
        if key in known and value not in (None, ""):
            setattr(settings, key, value)
    return settings


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
