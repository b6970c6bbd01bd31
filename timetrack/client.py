"""Reconnecting client for the ``/events`` stream."""

import asyncio
import enum
import inspect
import json
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from .logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], Any]

AUTH_ERROR_MARKERS = ("token", "authentication", "jwt")


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class StreamAuthError(Exception):
    """The server refused the credentials; retrying cannot help."""


@dataclass(frozen=True)
class ReconnectPolicy:
    base: float = 1.0
    cap: float = 30.0
    max_attempts: int = 10

    def delay_for(self, attempt: int) -> float:
        """Delay before reconnect ``attempt`` (1-indexed): 1s, 2s, 4s, ... capped."""
        return min(self.base * 2 ** (attempt - 1), self.cap)

    def should_retry(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts


def is_auth_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in AUTH_ERROR_MARKERS)


class SSEParser:
    """Incremental ``text/event-stream`` parser fed one line at a time."""

    def __init__(self):
        self._event = "message"
        self._data: list[str] = []

    def feed(self, line: str) -> tuple[str, str] | None:
        if not line:
            if not self._data:
                self._event = "message"
                return None
            event, data = self._event, "\n".join(self._data)
            self._event = "message"
            self._data = []
            return event, data

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        return None


class EventStreamClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        policy: ReconnectPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy or ReconnectPolicy()
        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, read=None),
        )
        self._sleep = sleep
        self._token: str | None = None
        self._task: asyncio.Task | None = None
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._state_listeners: list[Callable[[ConnectionState], Any]] = []

    def on(self, event: str, handler: Handler) -> None:
        """Register ``handler`` for events named ``event``, e.g. ``time-entry-started``."""
        self._handlers[event].append(handler)

    def on_state_change(self, listener: Callable[[ConnectionState], Any]) -> None:
        self._state_listeners.append(listener)

    async def connect(self, token: str) -> None:
        if self._task is not None and not self._task.done():
            if self.state == ConnectionState.CONNECTED and token == self._token:
                return
            await self._cancel_task()

        self._token = token
        self.attempts = 0
        self._set_state(ConnectionState.CONNECTING)
        self._task = asyncio.create_task(self._run())

    async def disconnect(self) -> None:
        await self._cancel_task()
        self.attempts = 0
        self._set_state(ConnectionState.DISCONNECTED)

    async def wait(self) -> None:
        """Block until the client stops on its own (``FAILED``)."""
        if self._task is not None:
            await self._task

    async def aclose(self) -> None:
        await self.disconnect()
        if self._owns_http:
            await self._http.aclose()

    async def _cancel_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                await self._stream()
                reason = "stream closed by server"
            except StreamAuthError as exc:
                logger.warning(f"Event stream authentication failed, not retrying: {exc}")
                self._set_state(ConnectionState.FAILED)
                return
            except httpx.HTTPError as exc:
                reason = str(exc) or type(exc).__name__
                if is_auth_error(reason):
                    logger.warning(f"Event stream authentication failed, not retrying: {reason}")
                    self._set_state(ConnectionState.FAILED)
                    return

            if not self.policy.should_retry(self.attempts):
                logger.error(f"Event stream gave up after {self.attempts} reconnect attempts")
                self._set_state(ConnectionState.FAILED)
                return

            self.attempts += 1
            delay = self.policy.delay_for(self.attempts)
            self._set_state(ConnectionState.RECONNECTING)
            logger.info(
                f"Event stream dropped ({reason}); reconnecting in {delay:g}s "
                f"(attempt {self.attempts}/{self.policy.max_attempts})"
            )
            await self._sleep(delay)
            self._set_state(ConnectionState.CONNECTING)

    async def _stream(self) -> None:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "text/event-stream",
        }
        async with self._http.stream("GET", "/events", headers=headers) as response:
            if response.status_code in (401, 403):
                await response.aread()
                raise StreamAuthError(_error_message(response))
            response.raise_for_status()

            self.attempts = 0
            self._set_state(ConnectionState.CONNECTED)
            logger.info("Event stream connected")

            parser = SSEParser()
            async for line in response.aiter_lines():
                parsed = parser.feed(line.rstrip("\r"))
                if parsed is not None:
                    await self._dispatch(*parsed)

    async def _dispatch(self, event: str, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = raw

        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Handler for {event} failed")

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        for listener in list(self._state_listeners):
            listener(state)


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {response.status_code}"
