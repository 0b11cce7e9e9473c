import logging
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Values are read from the process environment (Docker Compose loads the .env
    file from the project root), so no env file path is configured here.
    """

    # Persistence
    DATABASE_URL: str = "sqlite:///./gitstage.db"

    # GitHub remote
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_PAT: str = ""  # System token used for default (organization-owned) repos
    GITHUB_ORGANIZATION: str = "gitstage-projects"
    DEFAULT_BRANCH: str = "main"
    HTTP_TIMEOUT: float = 30.0
    USER_AGENT: str = "gitstage-sync"

    # Sync tuning
    PULL_MAX_BATCH_BYTES: int = 25 * 1024 * 1024
    TEMPLATE_READY_DELAY: float = 2.0  # Seconds GitHub needs to finish a template copy
    CREDENTIAL_CACHE_TTL: int = 300

    # Development and debugging
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
