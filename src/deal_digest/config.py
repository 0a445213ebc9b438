"""
Configuration management for the deal digest pipeline.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


class Config:
    """Configuration settings loaded from environment."""

    # Postgres
    DATABASE_URL: str = os.getenv('DATABASE_URL', '')

    # Queries
    DEFAULT_DEAL_LIMIT: int = int(os.getenv('DEFAULT_DEAL_LIMIT', '6'))

    # Email orchestration
    EMAIL_PACING_SECONDS: float = float(os.getenv('EMAIL_PACING_SECONDS', '0.6'))
    RATE_LIMIT_RETRY_SECONDS: float = float(os.getenv('RATE_LIMIT_RETRY_SECONDS', '2.0'))

    # Digest presentation
    DIGEST_BRAND_NAME: str = os.getenv('DIGEST_BRAND_NAME', 'Prox')
    PREFERENCES_URL: str = os.getenv('PREFERENCES_URL', 'https://prox.com/preferences')

    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.DATABASE_URL:
            missing.append('DATABASE_URL')
        return missing


# Singleton config instance
config = Config()
