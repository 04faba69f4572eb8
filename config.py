"""
Configuration for the Client Onboarding Compliance Engine.

Settings are read from environment variables, optionally seeded from a
.env file beside this module. One Config instance is shared process-wide
through get_config(); tests reset it via `config._config = None`.
"""

import os
import logging
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv


load_dotenv(Path(__file__).parent / ".env")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_POLICY_PATH = str(Path(__file__).parent / "utilities" / "policy" / "default_policy.json")


# =============================================================================
# Model Routing for External Collaborators
# =============================================================================

# Risk analysis reasons over the whole intake profile; forensics and search
# are short structured calls. Unlisted collaborators use Config.model.
AGENT_MODELS = {
    "RiskAnalysis": "claude-opus-4-6",
    "DocumentForensics": "claude-sonnet-4-6",
    "EntitySearch": "claude-sonnet-4-6",
}


def get_model_for_agent(agent_name: str) -> str:
    """Model for a collaborator, falling back to the configured default."""
    return AGENT_MODELS.get(agent_name) or get_config().model


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("true", "1", "yes")


# =============================================================================
# Application Configuration
# =============================================================================

@dataclass
class Config:
    """Engine settings; every field can be overridden from the environment."""

    # Collaborator API
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY"))
    model: str = field(default_factory=lambda: os.environ.get("MODEL", "claude-sonnet-4-6"))
    max_retries: int = field(default_factory=lambda: _env_int("MAX_RETRIES", 5))
    max_tokens: int = field(default_factory=lambda: _env_int("MAX_TOKENS", 2048))

    # Policy document with the document-requirement rule tables
    policy_path: str = field(default_factory=lambda: os.environ.get("POLICY_PATH", DEFAULT_POLICY_PATH))

    # Logging and console output
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_format: str = field(
        default_factory=lambda: os.environ.get("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    verbose: bool = field(default_factory=lambda: _env_flag("VERBOSE"))

    def __post_init__(self):
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            self.log_level = "INFO"
        self.max_retries = max(0, self.max_retries)

    def get_log_level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)


_config: Optional[Config] = None


def get_config() -> Config:
    """Process-wide configuration, created from the environment on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config):
    global _config
    _config = config
