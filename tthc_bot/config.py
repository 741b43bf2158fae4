from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Settings:
    """Configuration container for the catalog source, matching and the HTTP listener."""
    sheet_id: str
    sheet_name: str
    sheet_range: str
    credentials_file: Optional[str]
    catalog_ttl_seconds: float
    require_procedure_id: bool
    match_threshold: float
    anchor_phrases: Tuple[str, ...]
    candidate_limit: int
    strong_confidence: float
    strong_margin: float
    language_code: str
    host: str
    port: int


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables once at startup.
    Dependencies: Uses os.getenv; app.py loads .env before calling this.
    Failure Modes: Invalid numeric values (PORT, CATALOG_TTL_SECONDS, ...) raise ValueError.
    If Removed: The app cannot locate the sheet or tune matching and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    return Settings(
        sheet_id=os.getenv("SHEET_ID", ""),
        sheet_name=os.getenv("SHEET_NAME", "TTHC"),
        sheet_range=os.getenv("SHEET_RANGE", "A1:Q"),
        credentials_file=os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or None,
        catalog_ttl_seconds=float(os.getenv("CATALOG_TTL_SECONDS", "300")),
        require_procedure_id=_env_bool("CATALOG_REQUIRE_ID", False),
        match_threshold=float(os.getenv("MATCH_THRESHOLD", "0.45")),
        anchor_phrases=_env_list("MATCH_ANCHOR_PHRASES"),
        candidate_limit=int(os.getenv("CANDIDATE_LIMIT", "8")),
        strong_confidence=float(os.getenv("STRONG_CONFIDENCE", "0.8")),
        strong_margin=float(os.getenv("STRONG_MARGIN", "0.15")),
        language_code=os.getenv("LANGUAGE_CODE", "vi"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
    )
