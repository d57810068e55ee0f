"""
Sales Intelligence Engine - core package

Qualifies and prioritizes commercial landscaping leads: scores them, runs a
three-stage research pipeline per lead and drives outreach campaigns.

Architecture:
    score: Opportunity scoring (fit, engagement, timing, win probability, value)
    stages: Stage orchestrator (geo -> property -> service) and gating rules
    geo_enrichment: Stage 1, geocoding, satellite image reference, business intelligence
    property_analysis: Stage 2, public data, web research, social presence, vision analysis
    service_mapping: Stage 3, AI service plan with local competitor landscape
    competitors: Nearby competitor search (Google Places)
    research: Web search plus review themes
    social: Social platform presence via Perplexity with AI synthesis
    contacts: Apollo contact and organization enrichment
    campaigns: Sequence steps, bulk enrichment and message generation
    climate: Region, season and climate tables
    places: Google Maps / Places HTTP client
    llm: OpenAI JSON chat helper
    db: SQLite persistence (leads, activities, campaigns, settings, jobs)
    config: Settings from env and saved workspace settings
    errors: Error kinds and their HTTP/user mapping
    cancel: Cooperative cancellation token
    noise: Injectable score jitter
"""

from .errors import (
    ErrorKind,
    IntelError,
    ConfigMissingError,
    UpstreamError,
    RateLimitedError,
    ParseFailureError,
    NotFoundError,
    StageBlockedError,
    InvalidInputError,
    CancelledError,
    http_status,
    user_message,
)
from .config import Settings, get_settings, configure_logging
from .cancel import CancelToken
from .noise import NoNoise, RandomNoise, noise_from_settings
from .score import (
    ScoredLead,
    ScoreCache,
    score_lead,
    score_leads,
    get_scoring_summary,
)
from .stages import (
    STAGES,
    StageStatus,
    StageState,
    derive_stage_states,
    legacy_view,
    run_stage,
    run_full_analysis,
)
from .competitors import search_competitors
from .research import perform_real_research, analyze_review_themes
from .social import analyze_social_presence
from .contacts import enrich_contact
from .campaigns import generate_messages, prepare_campaign

__version__ = "1.0.0"
__all__ = [
    # Errors
    "ErrorKind",
    "IntelError",
    "ConfigMissingError",
    "UpstreamError",
    "RateLimitedError",
    "ParseFailureError",
    "NotFoundError",
    "StageBlockedError",
    "InvalidInputError",
    "CancelledError",
    "http_status",
    "user_message",
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
    "CancelToken",
    # Scoring
    "NoNoise",
    "RandomNoise",
    "noise_from_settings",
    "ScoredLead",
    "ScoreCache",
    "score_lead",
    "score_leads",
    "get_scoring_summary",
    # Stages
    "STAGES",
    "StageStatus",
    "StageState",
    "derive_stage_states",
    "legacy_view",
    "run_stage",
    "run_full_analysis",
    # Research
    "search_competitors",
    "perform_real_research",
    "analyze_review_themes",
    "analyze_social_presence",
    # Outreach
    "enrich_contact",
    "generate_messages",
    "prepare_campaign",
]
