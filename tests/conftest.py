import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from api_client import ApiClient
from auth.token_store import MemoryTokenStore
from config import ClientSettings
from server.app import create_app
from server.config import ServerSettings
from server.database import Database

from helpers import TEST_USER


@pytest.fixture
def database():
    db = Database()
    db.create_user(TEST_USER["name"], TEST_USER["email"], user_id=TEST_USER["id"])
    yield db
    db.close()


@pytest_asyncio.fixture
async def make_server(database):
    servers = []

    async def factory(overrides=None) -> TestServer:
        srv = TestServer(create_app(database, ServerSettings(), overrides))
        await srv.start_server()
        servers.append(srv)
        return srv

    yield factory
    for srv in servers:
        await srv.close()


@pytest_asyncio.fixture
async def make_client():
    clients = []

    def factory(target, store=None, settings=None) -> ApiClient:
        base_url = target if isinstance(target, str) else str(target.make_url("/api"))
        client = ApiClient(base_url, store if store is not None else MemoryTokenStore(),
                           settings=settings or ClientSettings())
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.close()
