"""Async API client shared by the source connectors and the target client."""
from __future__ import annotations

import asyncio
import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional, Tuple

import aiohttp

from identity_common.auth import Authenticator

from .errors import (
    ApiError,
    AuthenticationFailure,
    NotFoundError,
    RateLimitedError,
    TransientApiError,
    ValidationError,
)

logger = logging.getLogger("fast_migrate.api_client")


def parse_retry_after(headers: Mapping[str, str], now: Optional[float] = None) -> Optional[float]:
    """Seconds to wait before retrying, from Retry-After or Okta's X-Rate-Limit-Reset."""
    now = time.time() if now is None else now
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return max(float(retry_after), 0.0)
        except ValueError:
            try:
                return max(parsedate_to_datetime(retry_after).timestamp() - now, 0.0)
            except (TypeError, ValueError):
                return None
    reset = headers.get("X-Rate-Limit-Reset")
    if reset:
        try:
            return max(float(reset) - now, 0.0)
        except ValueError:
            return None
    return None


def raise_for_status(status: int, body: str, headers: Mapping[str, str], url: str = "") -> None:
    """Map an HTTP error status onto the error taxonomy."""
    if status < 400:
        return
    if status in (401, 403):
        raise AuthenticationFailure(f"{url} rejected credentials with status {status}: {body[:200]}")
    if status == 429:
        raise RateLimitedError(status, body, url, retry_after=parse_retry_after(headers))
    if status >= 500:
        raise TransientApiError(status, body, url, retry_after=parse_retry_after(headers))
    if status == 404:
        raise NotFoundError(status, body, url)
    if status in (400, 409, 422):
        raise ValidationError(status, body, url)
    raise ApiError(status, body, url)


class ApiClient:
    def __init__(
        self,
        base_url: str,
        config_loader=None,
        api_token: Optional[str] = None,
        bearer_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_path: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.config_loader = config_loader
        self._api_token = api_token
        self._bearer_token = bearer_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_path = token_path

        perf_config = config_loader.get_performance() if config_loader else {}
        self.connection_pool_size = perf_config.get("connection_pool_size", 20)
        self.connection_timeout = perf_config.get("connection_timeout", 10)
        self.read_timeout = perf_config.get("read_timeout", 30)
        self.keep_alive = perf_config.get("keep_alive", True)

        self.session: Optional[aiohttp.ClientSession] = None
        self.authenticator: Optional[Authenticator] = None
        self.request_count = 0

    async def __aenter__(self):
        connector = aiohttp.TCPConnector(
            limit=self.connection_pool_size,
            ttl_dns_cache=300,
            use_dns_cache=True,
            keepalive_timeout=60 if self.keep_alive else 0,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=None, connect=self.connection_timeout, sock_read=self.read_timeout)
        self.session = aiohttp.ClientSession(connector=connector, timeout=timeout)
        self.authenticator = Authenticator(self.base_url, self.session)
        if self._api_token:
            self.authenticator.set_api_token(self._api_token)
        if self._bearer_token:
            self.authenticator.set_bearer_token(self._bearer_token)
        if self._client_id and self._client_secret:
            self.authenticator.set_oauth_credentials(self._client_id, self._client_secret, self._token_path)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()

    def url_for(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}{endpoint}"

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Any, Mapping[str, str]]:
        """Issue one HTTP call; returns (decoded JSON or None, response headers)."""
        if not self.session or not self.authenticator:
            raise RuntimeError("ApiClient not initialized; use async context manager")

        headers = await self.authenticator.get_headers()
        url = self.url_for(endpoint)
        self.request_count += 1
        try:
            async with self.session.request(method, url, params=params, json=json_body, headers=headers) as response:
                text = await response.text()
                logger.debug("%s %s -> Status: %s", method, url, response.status)
                raise_for_status(response.status, text, response.headers, url)
                payload = await response.json(content_type=None) if text.strip() else None
                return payload, response.headers
        except asyncio.TimeoutError as e:
            raise TransientApiError(None, f"timeout: {e}", url) from e
        except aiohttp.ClientConnectionError as e:
            raise TransientApiError(None, f"connection error: {e}", url) from e

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Tuple[Any, Mapping[str, str]]:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json_body: Optional[Dict[str, Any]] = None) -> Tuple[Any, Mapping[str, str]]:
        return await self.request("POST", endpoint, json_body=json_body)

    @classmethod
    def next_link(cls, headers: Mapping[str, str]) -> Optional[str]:
        """Find rel="next" across every Link header (aiohttp may return several)."""
        if hasattr(headers, "getall"):
            link_headers = headers.getall("Link", [])
        else:
            link_headers = [headers["Link"]] if headers.get("Link") else []
        for link_header in link_headers:
            next_url = cls.extract_next_from_link(link_header)
            if next_url:
                return next_url
        return None

    @staticmethod
    def extract_next_from_link(link_header: Optional[str]) -> Optional[str]:
        if not link_header:
            return None
        parts = [p.strip() for p in link_header.split(",")]
        for part in parts:
            if "rel=\"next\"" in part:
                url_part = part.split(";")[0].strip()
                if url_part.startswith("<") and url_part.endswith(">"):
                    return url_part[1:-1]
        return None
