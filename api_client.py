"""Central HTTP client for server communication. JWT auth with auto-refresh.

Every call goes through one FIFO queue. A single drain loop pops items in
order and starts their transport calls without waiting for them, so a token
refresh can be slotted in between any two dispatches:

* proactive: before dispatching, if the access token expires within
  ``expiry_buffer_seconds``, the loop waits for a refresh;
* reactive: a 401 pauses the loop (status ``stopped``), refreshes, resumes
  and replays the request as a new queue item whose outcome settles the
  caller's original future.

At most one refresh runs at a time; concurrent callers join the running one.
"""

import asyncio
import enum
import json
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from auth.contracts import RefreshTokenResponse
from auth.token_store import CredentialStore
from config import ClientSettings, get_settings
from errors import ClientClosed, HTTPStatusError, QueueCleared, UnsupportedMethod
from ordered_queue import OrderedQueue, QueueAction, QueueEvent

log = logging.getLogger(__name__)

REQUEST_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"})


class Status(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"  # refresh in progress, no new dispatches


@dataclass(eq=False)
class QueueItem:
    method: str
    url: str | URL
    options: dict[str, Any]
    future: asyncio.Future
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    replay: bool = False
    signed_with: str | None = None  # access token the dispatch carried

    def resolve(self, response: "Response"):
        if not self.future.done():
            self.future.set_result(response)

    def reject(self, error: BaseException):
        if not self.future.done():
            self.future.set_exception(error)


@dataclass(frozen=True, slots=True)
class Response:
    """Status, headers and body of a finished call.

    The body is read while the connection is held, so the read side of the
    ``aiohttp.ClientResponse`` API keeps working after it has been released.
    """

    method: str
    url: URL
    status: int
    reason: str | None
    headers: CIMultiDictProxy
    body: bytes

    @classmethod
    async def read_from(cls, resp: aiohttp.ClientResponse) -> "Response":
        body = await resp.read()
        return cls(resp.method, resp.url, resp.status, resp.reason, resp.headers, body)

    @property
    def ok(self) -> bool:
        return self.status < 400

    async def read(self) -> bytes:
        return self.body

    async def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding)

    async def json(self) -> Any:
        """Decoded JSON body, None when empty."""
        if not self.body.strip():
            return None
        return json.loads(self.body)


async def _json_body(pending: asyncio.Future) -> Any:
    response = await pending
    return await response.json()


class ApiClient:
    def __init__(
        self,
        server_url: str,
        token_store: CredentialStore,
        *,
        settings: ClientSettings | None = None,
    ):
        self._settings = settings or get_settings()
        self._base = server_url.rstrip("/")
        self._tokens = token_store
        self._session: aiohttp.ClientSession | None = None
        self._queue: OrderedQueue[QueueItem] = OrderedQueue()
        self._in_flight: dict[str, QueueItem] = {}
        self._status = Status.IDLE
        self._drain_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False
        self._queue.subscribe(self._on_queue_event)

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.request_timeout),
            )

    async def close(self):
        """Reject queued requests, let in-flight ones finish, close the session."""
        self._closed = True
        self.clear_queue()
        if self._drain_task is not None:
            await asyncio.gather(self._drain_task, return_exceptions=True)
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    # ── State ──────────────────────────────────────────────

    @property
    def status(self) -> Status:
        return self._status

    @property
    def pending(self) -> int:
        return self._queue.size

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _set_status(self, value: Status):
        # Resuming with work queued goes straight back to draining.
        if value is Status.IDLE and not self._queue.is_empty():
            self._status = Status.RUNNING
            self._start_drain()
            return
        self._status = value

    def subscribe_to_queue(self, callback: Callable[[QueueEvent[QueueItem]], None]) -> Callable[[], None]:
        return self._queue.subscribe(callback)

    def clear_queue(self) -> int:
        """Drop every request not yet dispatched; their callers get QueueCleared."""
        dropped = self._queue.clear()
        for item in dropped:
            item.reject(QueueCleared(f"{item.method} {item.url} was dropped from the queue"))
        if dropped:
            log.info("Cleared %d queued request(s)", len(dropped))
        return len(dropped)

    # ── Public API ─────────────────────────────────────────
    # Every verb queues its request before returning; await the result (or
    # hand it to gather) to get the outcome.

    def get(self, url: str | URL, **options) -> asyncio.Task:
        return self._json("GET", url, options)

    def post(self, url: str | URL, **options) -> asyncio.Task:
        return self._json("POST", url, options)

    def put(self, url: str | URL, **options) -> asyncio.Task:
        return self._json("PUT", url, options)

    def patch(self, url: str | URL, **options) -> asyncio.Task:
        return self._json("PATCH", url, options)

    def delete(self, url: str | URL, **options) -> asyncio.Task:
        return self._json("DELETE", url, options)

    def head(self, url: str | URL, **options) -> asyncio.Future:
        return self._submit("HEAD", url, options)

    def request(self, url: str | URL, *, method: str | None = None, **options) -> asyncio.Future:
        """Generic entry point; *method* must be one of REQUEST_METHODS.

        Resolves to the full :class:`Response` rather than the decoded body.
        """
        if not isinstance(method, str) or method.upper() not in REQUEST_METHODS:
            raise UnsupportedMethod(method)
        return self._submit(method.upper(), url, options)

    def _json(self, method: str, url: str | URL, options: dict[str, Any]) -> asyncio.Task:
        pending = self._submit(method, url, options)
        return asyncio.get_running_loop().create_task(_json_body(pending))

    def _submit(
        self, method: str, url: str | URL, options: dict[str, Any], *, replay: bool = False,
    ) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        if self._closed:
            future.set_exception(ClientClosed(f"{method} {url}: client is closed"))
            return future
        self._queue.enqueue(QueueItem(method, url, dict(options), future, replay=replay))
        return future

    # ── Drain loop ─────────────────────────────────────────

    def _on_queue_event(self, event: QueueEvent[QueueItem]):
        if event.action is not QueueAction.ENQUEUED or self._status is not Status.IDLE:
            return
        self._status = Status.RUNNING
        self._start_drain()

    def _start_drain(self):
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self):
        try:
            while not self._queue.is_empty() and self._status is not Status.STOPPED:
                item = self._queue.dequeue()
                if item is None:
                    continue

                self._in_flight[item.id] = item
                try:
                    if self._should_refresh_access_token():
                        await self._refresh_tokens()
                except Exception as e:
                    log.error("Proactive refresh failed: %r", e)
                    self._in_flight.pop(item.id, None)
                    item.reject(e)
                    continue

                self._spawn(self._dispatch(item))
        finally:
            if self._status is not Status.STOPPED:
                self._status = Status.IDLE

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, item: QueueItem):
        try:
            response = await self._execute(item)
            await self._inspect(item, response)
        except Exception as e:
            self._in_flight.pop(item.id, None)
            log.debug("%s %s failed: %r", item.method, item.url, e)
            item.reject(e)

    async def _execute(self, item: QueueItem) -> Response:
        options = dict(item.options)
        headers = self._auth_headers()
        headers[self._settings.request_id_header] = item.id
        caller = CIMultiDict(options.pop("headers", None) or {})
        headers.update([(k, v) for k, v in caller.items() if v is not None])
        item.signed_with = self._tokens.access_token

        await self._ensure_session()
        log.debug("→ %s %s [%s]", item.method, item.url, item.id)
        async with self._session.request(
            item.method, self._url(item.url), headers=headers, **options,
        ) as resp:
            return await Response.read_from(resp)

    # ── Response inspection ────────────────────────────────

    async def _inspect(self, item: QueueItem, response: Response):
        if self._in_flight.pop(item.id, None) is None:
            self._settle(item, response)
            return
        if response.status != 401 or item.replay or self._tokens.refresh_token is None:
            self._settle(item, response)
            return

        log.info("%s %s → 401, refreshing and replaying", item.method, item.url)
        self._set_status(Status.STOPPED)
        try:
            if self._tokens.access_token == item.signed_with:
                refreshed = await self._refresh_tokens()
            else:
                # Someone else rotated the token after this request was signed.
                refreshed = self._tokens.access_token is not None
        finally:
            self._set_status(Status.IDLE)

        if not refreshed:
            self._settle(item, response)
            return

        replay = self._submit(item.method, item.url, item.options, replay=True)
        replay.add_done_callback(lambda f: _chain(f, item))

    def _settle(self, item: QueueItem, response: Response):
        if response.ok:
            item.resolve(response)
        else:
            log.error("API %s %s → %d", item.method, item.url, response.status)
            item.reject(HTTPStatusError(item.method, str(self._url(item.url)), response))

    # ── Tokens ─────────────────────────────────────────────

    def _auth_headers(self) -> CIMultiDict:
        headers = CIMultiDict()
        if self._tokens.access_token is not None:
            headers["Authorization"] = f"Bearer {self._tokens.access_token}"
        if self._tokens.refresh_token is not None:
            headers[self._settings.refresh_token_header] = self._tokens.refresh_token
        return headers

    def _should_refresh_access_token(self) -> bool:
        if self._tokens.refresh_token is None:
            return False
        expiration = self._tokens.get_token_expiration() or 0
        return time.time() + self._settings.expiry_buffer_seconds > expiration

    async def _refresh_tokens(self) -> bool:
        """Join the running refresh or start one. True if a new token was stored."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh())
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> bool:
        await self._ensure_session()
        data = None
        async with self._session.post(
            self._url(self._settings.refresh_path), headers=self._auth_headers(),
        ) as resp:
            if resp.ok:
                try:
                    data = RefreshTokenResponse.model_validate(await resp.json(content_type=None))
                except ValueError as e:
                    log.error("Malformed refresh response: %s", e)
            else:
                log.warning("Token refresh rejected: %d", resp.status)

        if data is None:
            await self._logout()
            return False

        self._tokens.access_token = data.token
        log.info("Access token refreshed")
        return True

    async def _logout(self):
        try:
            async with self._session.post(
                self._url(self._settings.logout_path), headers=self._auth_headers(),
            ) as resp:
                if not resp.ok:
                    log.warning("Logout → %d", resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("Logout request failed: %s", e)
        self._tokens.access_token = None
        self._tokens.refresh_token = None
        log.info("Logged out, tokens cleared")

    def _url(self, target: str | URL) -> str | URL:
        if isinstance(target, URL):
            return target if target.is_absolute() else URL(f"{self._base}/{str(target).lstrip('/')}")
        if target.startswith(("http://", "https://")):
            return target
        return f"{self._base}/{target.lstrip('/')}"


def _chain(source: asyncio.Future, item: QueueItem):
    if source.cancelled():
        item.future.cancel()
    elif source.exception() is not None:
        item.reject(source.exception())
    else:
        item.resolve(source.result())
