import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    jwt_algorithm: str
    default_time_limit_minutes: int
    certificate_max_tries: int
    log_level: str


@lru_cache()
def get_settings() -> Settings:
    """
    Reads settings from the environment (and a local .env file, if present).
    """
    load_dotenv()

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./coursegate.db"),
        jwt_secret=os.getenv("JWT_SECRET", "change-me"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        default_time_limit_minutes=int(os.getenv("DEFAULT_TIME_LIMIT_MINUTES", "20")),
        certificate_max_tries=int(os.getenv("CERTIFICATE_MAX_TRIES", "3")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
