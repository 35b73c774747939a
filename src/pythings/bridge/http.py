"""HTTP JSON bridge: GET the state document, PUT changes back.

All requests run as tasks on the running asyncio loop; :meth:`push` and
:meth:`pull` only schedule them. Optionally polls the endpoint every
``poll_interval`` seconds.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from pythings._ids import thing_urn
from pythings._redact import redact_for_log
from pythings.bridge.base import Bridge, PushDone
from pythings.config import ThingsConfig
from pythings.exceptions import BridgeError

_logger = logging.getLogger(__name__)

_HEADERS = {"accept": "application/json"}


class HttpJsonBridge(Bridge):
    """One device exposed as a JSON document at ``initd["url"]``.

    ``initd`` keys: ``url`` (required), ``thing_id``, ``name``,
    ``timeout``, ``poll_interval``, ``headers``.
    """

    def __init__(
        self,
        initd: Mapping[str, Any] | None = None,
        *,
        native: Any = None,
        config: ThingsConfig | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(initd, native=native)
        self._config = config or ThingsConfig.from_env()
        self.url: str = str(self.initd.get("url") or "")
        self._http = http_session
        self._owns_session = http_session is None
        self._reachable = False
        self._poll_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

        self.timeout = float(self.initd.get("timeout") or self._config.http_timeout)
        self.poll_interval = float(self.initd.get("poll_interval") or self._config.http_poll_interval)

    def discover(self, discoverd: Mapping[str, Any] | None = None) -> None:
        if not self.url:
            _logger.error("HTTP discovery needs a url initd=%s", redact_for_log(self.initd))
            return
        self.discovered(
            HttpJsonBridge(
                self.initd,
                native=self.url,
                config=self._config,
                http_session=None if self._owns_session else self._http,
            )
        )

    def _headers(self) -> dict[str, str]:
        return {**_HEADERS, **dict(self.initd.get("headers") or {})}

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._http

    def _spawn(self, coro: Any) -> asyncio.Task[Any] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def connect(self, connectd: Mapping[str, Any] | None = None) -> None:
        self._reachable = True
        if self.poll_interval > 0:
            self._poll_task = self._spawn(self._poll())
            if self._poll_task is None:
                _logger.warning("No running event loop; polling disabled url=%s", self.url)
        else:
            self.pull()

    async def _poll(self) -> None:
        while True:
            await self.fetch()
            await asyncio.sleep(self.poll_interval)

    async def fetch(self) -> dict[str, Any] | None:
        """GET the state document and report it through ``pulled``."""
        try:
            async with self._session().get(self.url, headers=self._headers()) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise BridgeError(f"HTTP {resp.status} from {self.url}: {text[:200]}", bridge="http")
            values = json.loads(text)
            if not isinstance(values, dict):
                raise BridgeError(f"State document from {self.url} is not an object", bridge="http")
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError, BridgeError):
            _logger.warning("HTTP pull failed url=%s", self.url, exc_info=True)
            if self._reachable:
                self._reachable = False
                self.pulled(None)
            return None

        self._reachable = True
        _logger.debug("HTTP pulled url=%s values=%s", self.url, redact_for_log(values))
        self.pulled(values)
        return values

    async def send(self, values: Mapping[str, Any]) -> None:
        """PUT *values*; raises :class:`BridgeError` on any failure."""
        _logger.debug("HTTP push url=%s values=%s", self.url, redact_for_log(dict(values)))
        try:
            async with self._session().put(self.url, json=dict(values), headers=self._headers()) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise BridgeError(f"HTTP {resp.status} from {self.url}: {text[:200]}", bridge="http")
        except aiohttp.ClientError as exc:
            raise BridgeError(f"Request to {self.url} failed: {exc}", bridge="http") from exc
        except (TypeError, ValueError) as exc:
            raise BridgeError(f"Cannot encode push for {self.url}: {exc}", bridge="http") from exc

    async def _push(self, values: Mapping[str, Any], done: PushDone) -> None:
        try:
            await self.send(values)
        except Exception as exc:
            _logger.warning("HTTP push failed url=%s", self.url, exc_info=True)
            done(exc)
            return
        done(None)

    def push(self, values: Mapping[str, Any], done: PushDone) -> None:
        task = self._spawn(self._push(dict(values), done))
        if task is None:
            done(BridgeError("no running event loop", bridge="http"))
            return

        def cancelled(task: asyncio.Task[Any]) -> None:
            if task.cancelled():
                done(BridgeError(f"push to {self.url} was cancelled", bridge="http"))

        task.add_done_callback(cancelled)

    def pull(self) -> None:
        if self._spawn(self.fetch()) is None:
            _logger.warning("No running event loop; pull skipped url=%s", self.url)

    def reachable(self) -> bool:
        return self.native is not None and self._reachable

    def meta(self) -> dict[str, Any]:
        d: dict[str, Any] = {"iot:thing-id": self.initd.get("thing_id") or thing_urn("http", self.url)}
        if self.initd.get("name"):
            d["schema:name"] = self.initd["name"]
        return d

    async def close(self) -> None:
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        if self._owns_session and self._http is not None and not self._http.closed:
            await self._http.close()

    def disconnect(self) -> float:
        self._reachable = False
        self.native = None
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        if self._spawn(self.close()) is None:
            for task in list(self._tasks):
                task.cancel()
        return 0.0
