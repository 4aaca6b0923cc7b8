from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Pattern, Tuple

from .registration import DEFAULT_REGISTRATION_REGEX, compile_registration_pattern

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class Settings:
    """Configuration container for the API, lookup browser, sessions, and model."""
    port: int
    gemini_api_key: str
    gemini_model: str
    allowed_origins: Tuple[str, ...]
    allowed_origin_regex: Optional[str]
    lookup_base_url: str
    lookup_api_marker: str
    lookup_input_selector: str
    lookup_search_selector: str
    lookup_user_agent: str
    browser_headless: bool
    navigation_timeout_ms: int
    control_timeout_ms: int
    settle_window_seconds: float
    confirm_window_seconds: float
    lookup_timeout_seconds: float
    registration_pattern: Pattern[str]
    session_ttl_seconds: float
    max_sessions: int
    history_window: int
    max_output_tokens: int
    temperature: float
    knowledge_path: Path
    prompts_dir: Path


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Non-numeric timeout/limit values or an invalid REGISTRATION_PATTERN
        raise ValueError.
    If Removed: App cannot configure the lookup browser or model and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve the knowledge table path, then build Settings.
    knowledge_path = os.getenv("KNOWLEDGE_PATH")
    if knowledge_path:
        knowledge_file = Path(knowledge_path)
    else:
        knowledge_file = (BASE_DIR / "knowledge" / "bmw_knowledge.json").resolve()

    lookup_base_url = os.getenv("LOOKUP_BASE_URL", "https://kolariautot.com").rstrip("/")

    return Settings(
        port=int(os.getenv("PORT", "5000")),
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        allowed_origins=_env_list("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173"),
        allowed_origin_regex=os.getenv("ALLOWED_ORIGIN_REGEX") or None,
        lookup_base_url=lookup_base_url,
        lookup_api_marker=os.getenv("LOOKUP_API_MARKER", "kolariautot.com/api"),
        lookup_input_selector=os.getenv("LOOKUP_INPUT_SELECTOR", "input[name='registrationNumber']"),
        lookup_search_selector=os.getenv("LOOKUP_SEARCH_SELECTOR", "button[type='submit']"),
        lookup_user_agent=os.getenv("LOOKUP_USER_AGENT", DEFAULT_USER_AGENT),
        browser_headless=_env_flag("BROWSER_HEADLESS", "true"),
        navigation_timeout_ms=int(os.getenv("NAVIGATION_TIMEOUT_MS", "30000")),
        control_timeout_ms=int(os.getenv("CONTROL_TIMEOUT_MS", "5000")),
        settle_window_seconds=float(os.getenv("SETTLE_WINDOW_SECONDS", "10")),
        confirm_window_seconds=float(os.getenv("CONFIRM_WINDOW_SECONDS", "3")),
        lookup_timeout_seconds=float(os.getenv("LOOKUP_TIMEOUT_SECONDS", "90")),
        registration_pattern=compile_registration_pattern(
            os.getenv("REGISTRATION_PATTERN", DEFAULT_REGISTRATION_REGEX)
        ),
        session_ttl_seconds=float(os.getenv("SESSION_TTL_SECONDS", "3600")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "500")),
        history_window=int(os.getenv("HISTORY_WINDOW", "10")),
        max_output_tokens=int(os.getenv("MAX_OUTPUT_TOKENS", "1000")),
        temperature=float(os.getenv("TEMPERATURE", "0.7")),
        knowledge_path=knowledge_file,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
    )
