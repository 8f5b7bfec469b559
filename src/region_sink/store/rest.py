"""Apache Geode REST API store client."""

from __future__ import annotations

import json
from collections.abc import Collection, Mapping
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from region_sink.config.models import RestStoreConfig, RetryConfig
from region_sink.store.base import DestinationExistsError, StoreError

logger = structlog.get_logger()

DATA_API = "/geode/v1"
MANAGEMENT_API = "/management/v1"


def wire_key(key: Any) -> str:
    """The string Geode's REST API stores *key* under."""
    if isinstance(key, bytes):
        return key.decode("utf-8", errors="replace")
    return str(key)


def _key_path(keys: Collection[Any]) -> str:
    """Comma-joined, URL-encoded key list for multi-key REST calls."""
    return ",".join(quote(wire_key(k), safe="") for k in keys)


class RestRegion:
    """Proxy handle onto a server-side Geode region.

    Holds no data locally; every call is a blocking HTTP request.
    """

    def __init__(self, client: httpx.Client, name: str) -> None:
        self._client = client
        self._name = name
        self._path = f"{DATA_API}/{quote(name, safe='')}"

    @property
    def name(self) -> str:
        return self._name

    def put_all(self, entries: Mapping[Any, Any]) -> None:
        if not entries:
            return
        keys = list(entries)
        if len(keys) == 1:
            body: Any = entries[keys[0]]
        else:
            body = [entries[k] for k in keys]
        # Serialised by hand: httpx treats json=None as "no body", not null.
        resp = self._client.put(
            f"{self._path}/{_key_path(keys)}",
            content=json.dumps(body),
            headers={"Content-Type": "application/json"},
        )
        resp.raise_for_status()
        logger.debug("rest_region.put_all", region=self._name, entries=len(keys))

    def remove_all(self, keys: Collection[Any]) -> None:
        if not keys:
            return
        resp = self._client.delete(f"{self._path}/{_key_path(keys)}")
        # Deleting keys that are already absent is not an error.
        if resp.status_code != 404:
            resp.raise_for_status()
        logger.debug("rest_region.remove_all", region=self._name, keys=len(keys))

    def __repr__(self) -> str:
        return f"RestRegion({self._name!r})"


class RestStoreClient:
    """Synchronous wrapper around the Geode developer and management REST APIs."""

    def __init__(
        self, config: RestStoreConfig, retry_config: RetryConfig | None = None
    ) -> None:
        self._config = config
        self._retry = retry_config or RetryConfig()
        self._client: httpx.Client | None = None

    @property
    def url(self) -> str:
        return self._config.url

    @property
    def management_url(self) -> str:
        return self._config.management_url or self._config.url

    def connect(self) -> None:
        auth: httpx.BasicAuth | None = None
        if self._config.username is not None and self._config.password is not None:
            auth = httpx.BasicAuth(
                self._config.username, self._config.password.get_secret_value()
            )
        self._client = httpx.Client(
            base_url=self._config.url,
            auth=auth,
            timeout=httpx.Timeout(self._config.timeout_seconds),
            verify=self._config.verify_ssl,
            headers={"Accept": "application/json"},
        )

        retry_cfg = self._retry

        @retry(
            stop=stop_after_attempt(retry_cfg.max_attempts),
            wait=wait_exponential_jitter(
                initial=retry_cfg.initial_wait_seconds,
                max=retry_cfg.max_wait_seconds,
                jitter=retry_cfg.multiplier if retry_cfg.jitter else 0,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        def _ping() -> None:
            resp = self._http.get(f"{self.url}{DATA_API}/ping")
            resp.raise_for_status()

        try:
            _ping()
        except httpx.HTTPError as exc:
            self.close()
            msg = f"Geode REST API at {self.url} is not reachable: {exc}"
            raise StoreError(msg) from exc
        logger.info("rest_store.connected", url=self.url)

    @property
    def _http(self) -> httpx.Client:
        if self._client is None:
            msg = "RestStoreClient not connected — call connect() first"
            raise StoreError(msg)
        return self._client

    def create_destination(self, name: str) -> RestRegion:
        resp = self._http.post(
            f"{self.management_url}{MANAGEMENT_API}/regions",
            json={"name": name, "type": self._config.region_type},
        )
        if resp.status_code == 409:
            msg = f"Region '{name}' already exists"
            raise DestinationExistsError(msg)
        if resp.is_error:
            msg = f"Failed to create region '{name}': {resp.status_code} {resp.text}"
            raise StoreError(msg)
        return self._region(name)

    def get_destination(self, name: str) -> RestRegion | None:
        resp = self._http.get(f"{self.url}{DATA_API}")
        resp.raise_for_status()
        names = {r.get("name") for r in resp.json().get("regions", [])}
        if name not in names:
            return None
        return self._region(name)

    def _region(self, name: str) -> RestRegion:
        return RestRegion(self._http, name)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("rest_store.closed", url=self.url)

    def health(self) -> dict[str, Any]:
        reachable = False
        if self._client is not None:
            try:
                resp = self._client.get(f"{self.url}{DATA_API}/ping")
                reachable = resp.is_success
            except httpx.HTTPError:
                reachable = False
        return {
            "type": "rest",
            "status": "running" if reachable else "stopped",
            "url": self.url,
        }
