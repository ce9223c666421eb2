from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

_ENV_FILE = Path(__file__).parent / ".env"


class ClientSettings(BaseSettings):
    base_url: str = "http://localhost:3000/api"
    refresh_path: str = "tokens/refresh"
    logout_path: str = "authentication/logout"
    refresh_token_header: str = "x-refresh-token"
    request_id_header: str = "x-request-id"
    expiry_buffer_seconds: float = 10.0  # refresh this long before `exp`
    request_timeout: float = 30.0

    model_config = {
        "env_prefix": "API_CLIENT_",
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> ClientSettings:
    return ClientSettings()
