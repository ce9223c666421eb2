from aiohttp.test_utils import TestServer

from api_client import ApiClient
from auth.token_store import MemoryTokenStore
from server.app import CALLS

TEST_USER = {"id": 1, "name": "John Doe", "email": "john.doe@gmail.com"}


def calls(srv: TestServer, path: str | None = None) -> list:
    """Requests the mock server received, optionally only those for *path*."""
    return [c for c in srv.app[CALLS] if path is None or c.path == path]


async def login(client: ApiClient, store: MemoryTokenStore) -> dict:
    data = await client.post("authentication/login", json={"email": TEST_USER["email"]})
    store.save(data["token"], data["refreshToken"])
    return data
