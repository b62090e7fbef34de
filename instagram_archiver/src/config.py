"""
Archiver configuration
Runtime options come from the CLI, falling back to INSTAGRAM_ARCHIVER_* environment variables (.env supported)
"""

import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

ENV_PREFIX = "INSTAGRAM_ARCHIVER_"
INSTAGRAM_BASE_URL = "https://www.instagram.com/"
GRAPHQL_QUERY_PATTERN = r"instagram\.com/graphql/query"


class ArchiverConfig(BaseModel):
    """Configuration for an archive run"""
    output: str = Field(description="Root directory for captures and downloaded media")
    user_data_dir: Optional[str] = Field(default=None, description="Browser profile directory (persists cookies between runs)")
    headless: bool = Field(default=True, description="Run the browser without a window")
    incognito: bool = Field(default=True, description="Fetch public media in an isolated context")
    update: bool = Field(default=False, description="Stop at the first highlight with nothing new")
    highlights: bool = Field(default=True, description="Archive a profile's highlights")
    stories: bool = Field(default=True, description="Archive a profile's current stories")
    logout: bool = Field(default=False, description="Log out of Instagram when done")
    debug: bool = Field(default=False, description="Log every browser request and response")
    pause: bool = Field(default=False, description="Wait for a key press before exiting")
    settle_delay_ms: int = Field(default=2000, ge=0, description="Delay after navigation settles")
    settle_jitter_ms: int = Field(default=1000, ge=0, description="Random extra delay after navigation")
    download_timeout: float = Field(default=60.0, gt=0, description="Timeout for a single asset request in seconds")
    base_url: str = Field(default=INSTAGRAM_BASE_URL)

    @classmethod
    def from_env(cls, **overrides: Any) -> "ArchiverConfig":
        """Build a config from environment variables, with explicit overrides taking precedence"""
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            env_value = os.getenv(ENV_PREFIX + name.upper())
            if env_value is not None:
                values[name] = env_value
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


def validate_config(config: ArchiverConfig) -> List[str]:
    """
    Validate an archive configuration.
    Returns a list of problems; empty when the config is usable.
    """
    errors = []

    if not config.output or len(config.output.strip()) == 0:
        errors.append("output directory is not set")
    elif os.path.exists(config.output) and not os.path.isdir(config.output):
        errors.append(f"output path {config.output} exists and is not a directory")

    if config.user_data_dir and os.path.exists(config.user_data_dir) and not os.path.isdir(config.user_data_dir):
        errors.append(f"user data path {config.user_data_dir} is not a directory")

    if not config.base_url.startswith("https://") or not config.base_url.endswith("/"):
        errors.append("base_url must be an https URL ending with '/'")

    return errors


def get_config_summary(config: ArchiverConfig) -> Dict[str, Any]:
    """Return a summary of the current configuration (without browser profile paths)"""
    return {
        'output': config.output,
        'user_data_set': bool(config.user_data_dir),
        'headless': config.headless,
        'incognito': config.incognito,
        'update': config.update,
        'highlights': config.highlights,
        'stories': config.stories,
    }
