from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

_ENV_FILE = Path(__file__).parent / ".env"


class ServerSettings(BaseSettings):
    jwt_secret: str = "secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_seconds: int = 5 * 60
    refresh_token_expire_days: int = 7
    host: str = "localhost"
    port: int = 3000
    prefix: str = "/api"
    refresh_token_header: str = "x-refresh-token"
    database_path: str = ":memory:"

    model_config = {
        "env_prefix": "MOCK_SERVER_",
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> ServerSettings:
    return ServerSettings()
