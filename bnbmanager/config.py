from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str

    # Tokens are issued by the identity provider; this service only VERIFIES them
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None

    REDIS_URL: str
    PROPERTY_CACHE_TTL: int = 300

    # When set, nightly rates are looked up from a separate property service
    PROPERTY_SERVICE_URL: Optional[str] = None
    PROPERTY_SERVICE_TIMEOUT: float = 5.0

    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env")


settings = Settings()
