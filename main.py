"""Log in against the API and fire a burst of concurrent requests through one client."""

import asyncio
import logging
import sys

from api_client import ApiClient
from auth.token_store import TokenStore
from config import get_settings
from errors import HTTPStatusError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
log = logging.getLogger(__name__)


async def run(email: str, burst: int = 5):
    settings = get_settings()
    store = TokenStore()
    async with ApiClient(settings.base_url, store, settings=settings) as client:
        if store.refresh_token is None:
            data = await client.post("authentication/login", json={"email": email})
            store.save(data["token"], data["refreshToken"])

        results = await asyncio.gather(
            *(client.get("users/me") for _ in range(burst)), return_exceptions=True,
        )
        for i, result in enumerate(results):
            if isinstance(result, HTTPStatusError):
                log.error("Request %d failed: %s", i, result)
            elif isinstance(result, BaseException):
                log.error("Request %d failed: %r", i, result)
            else:
                log.info("Request %d → %s", i, result)


def main():
    email = sys.argv[1] if len(sys.argv) > 1 else "john.doe@gmail.com"
    asyncio.run(run(email))


if __name__ == "__main__":
    main()
