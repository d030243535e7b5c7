import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel


class Settings(BaseModel):

    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db: str = "chatapp"
    # unset: create_app falls back to a random per-process secret
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    client_url: str = "*"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000


@lru_cache
def get_settings() -> Settings:
    env = {
        "mongodb_url": os.getenv("MONGODB_URL"),
        "mongodb_db": os.getenv("MONGODB_DB"),
        "jwt_secret": os.getenv("JWT_SECRET"),
        "jwt_algorithm": os.getenv("JWT_ALGORITHM"),
        "access_token_expire_minutes": os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES"),
        "client_url": os.getenv("CLIENT_URL"),
        "log_level": os.getenv("LOG_LEVEL"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    # unset variables fall back to the model defaults
    return Settings(**{k: v for k, v in env.items() if v})
