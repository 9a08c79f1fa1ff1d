"""
Async HTTP client for the central pattern registry.

Endpoints:
- POST /api/patterns/push      push a batch (contributor id in x-contributor-id)
- GET  /api/patterns/pull      one page of patterns
- GET  /api/patterns/{id}      a single pattern, 404 when absent
- GET  /api/health             liveness

Transport policy:
- 429 raises RateLimitedError immediately and is never retried
- any other 4xx raises RegistryError immediately
- timeouts, network failures and 5xx are retried with 2**attempt second
  backoff until ``max_retries`` attempts have been made
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import httpx

from workflow_patterns.config import RegistryConfig
from workflow_patterns.errors import (
    RateLimitedError,
    RegistryError,
    RegistryErrorType,
    RegistryTransportError,
    classify_status,
)
from workflow_patterns.patterns.models import PatternKind, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

CONTRIBUTOR_HEADER = "x-contributor-id"
DEFAULT_PAGE_SIZE = 50


def _parse_reset_at(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


@dataclass
class RegistryPattern:
    """A pattern as exchanged with the registry."""

    id: str
    type: PatternKind
    data: dict[str, Any]
    hash: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "type": self.type.value, "data": self.data}
        if self.hash is not None:
            result["hash"] = self.hash
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryPattern:
        return cls(
            id=data["id"],
            type=PatternKind(data["type"]),
            data=data.get("data") or {},
            hash=data.get("hash"),
            created_at=data.get("createdAt"),
        )


@dataclass
class RateLimitInfo:
    remaining: int = 0
    reset_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> RateLimitInfo:
        data = data or {}
        return cls(
            remaining=int(data.get("remaining", 0)),
            reset_at=_parse_reset_at(data.get("resetAt")),
        )


@dataclass
class PushResponse:
    status: str
    pushed: int
    skipped: int
    errors: list[str] = field(default_factory=list)
    rate_limit: RateLimitInfo = field(default_factory=RateLimitInfo)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PushResponse:
        return cls(
            status=data.get("status", "ok"),
            pushed=int(data.get("pushed", 0)),
            skipped=int(data.get("skipped", 0)),
            errors=list(data.get("errors") or []),
            rate_limit=RateLimitInfo.from_dict(data.get("rateLimit")),
        )


@dataclass
class Pagination:
    offset: int
    limit: int
    total: int
    has_more: bool


@dataclass
class PullResponse:
    patterns: list[RegistryPattern]
    pagination: Pagination

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PullResponse:
        page = data.get("pagination") or {}
        patterns = [RegistryPattern.from_dict(p) for p in data.get("patterns", [])]
        return cls(
            patterns=patterns,
            pagination=Pagination(
                offset=int(page.get("offset", 0)),
                limit=int(page.get("limit", len(patterns))),
                total=int(page.get("total", len(patterns))),
                has_more=bool(page.get("hasMore", False)),
            ),
        )


class RegistryClient:
    """
    Client for the pattern registry.

    Use as an async context manager, or call ``close()`` when done::

        async with RegistryClient(config.registry) as client:
            response = await client.push(patterns, contributor_id)
    """

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Endpoint, timeout and retry settings.
            transport: Optional httpx transport (tests pass a MockTransport).
            sleep: Coroutine used for backoff waits.
        """
        self.config = config or RegistryConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.timeout_seconds = self.config.timeout_seconds
        self.max_retries = max(1, self.config.max_retries)
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> RegistryClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
                headers={"Accept": "application/json"},
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def push(self, patterns: list[RegistryPattern], contributor_id: str) -> PushResponse:
        """
        Push a batch of already-anonymized patterns.

        Raises:
            RateLimitedError: The contributor's quota is exhausted.
            RegistryError: The registry rejected the batch.
        """
        payload = {"patterns": [p.to_dict() for p in patterns]}
        data = await self._request(
            "POST",
            "/api/patterns/push",
            json=payload,
            headers={CONTRIBUTOR_HEADER: contributor_id},
        )
        return self._parse(PushResponse, data)

    async def pull(
        self,
        pattern_type: Optional[PatternKind] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        since: Optional[datetime] = None,
    ) -> PullResponse:
        """Fetch one page of patterns."""
        params: dict[str, Any] = {"limit": limit}
        if pattern_type is not None:
            params["type"] = pattern_type.value
        if offset:
            params["offset"] = offset
        if since is not None:
            params["since"] = format_timestamp(since)

        data = await self._request("GET", "/api/patterns/pull", params=params)
        return self._parse(PullResponse, data)

    async def pull_all(
        self,
        pattern_type: Optional[PatternKind] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        since: Optional[datetime] = None,
    ) -> AsyncIterator[PullResponse]:
        """Yield pages until the registry reports no more."""
        offset = 0
        while True:
            page = await self.pull(pattern_type, limit=page_size, offset=offset, since=since)
            yield page
            if not page.pagination.has_more or not page.patterns:
                break
            offset += len(page.patterns)

    async def get_pattern(self, pattern_id: str) -> Optional[RegistryPattern]:
        """A single pattern, or None when the registry does not have it."""
        try:
            data = await self._request("GET", f"/api/patterns/{pattern_id}")
        except RegistryError as e:
            if e.error_type is RegistryErrorType.NOT_FOUND:
                return None
            raise
        return self._parse(RegistryPattern, data)

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/api/health")
            return True
        except RegistryError as e:
            logger.debug("Registry health check failed: %s", e)
            return False

    # =========================================================================
    # Transport
    # =========================================================================

    @staticmethod
    def _parse(response_class: Any, data: Any) -> Any:
        if not isinstance(data, dict):
            raise RegistryError(
                "Unexpected registry response",
                error_type=RegistryErrorType.INVALID_RESPONSE,
            )
        try:
            return response_class.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise RegistryError(
                f"Unexpected registry response: {e}",
                error_type=RegistryErrorType.INVALID_RESPONSE,
            )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request under the retry policy and return the decoded body."""
        await self.connect()
        attempt = 1

        while True:
            try:
                return await self._send_once(method, path, **kwargs)
            except RegistryError as e:
                if not e.should_retry:
                    raise
                if attempt >= self.max_retries:
                    logger.error("Registry %s %s failed after %d attempts", method, path, attempt)
                    raise
                delay = 2 ** attempt
                logger.warning(
                    "Registry %s %s failed (attempt %d/%d): %s. Retrying in %ds",
                    method, path, attempt, self.max_retries, e, delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def _send_once(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._client is None:
            raise RegistryError("Registry client is not connected")
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RegistryTransportError(
                f"Request timed out after {self.timeout_seconds}s: {e}", timed_out=True
            )
        except httpx.TransportError as e:
            raise RegistryTransportError(f"Network error contacting registry: {e}")

        if response.status_code == 429:
            body = _json_or_empty(response)
            raise RateLimitedError(
                body.get("message") or "Rate limit exceeded",
                reset_at=_parse_reset_at(body.get("resetAt")),
                remaining=int(body.get("remaining") or 0),
                body=response.text,
            )

        if response.is_error:
            body = _json_or_empty(response)
            error_type = classify_status(response.status_code)
            raise RegistryError(
                body.get("error") or body.get("message")
                or f"Request failed with status {response.status_code}",
                error_type=error_type,
                status_code=response.status_code,
                body=response.text,
                recoverable=error_type is RegistryErrorType.SERVER_ERROR,
            )

        try:
            return response.json()
        except ValueError:
            raise RegistryError(
                "Registry returned a non-JSON body",
                error_type=RegistryErrorType.INVALID_RESPONSE,
                status_code=response.status_code,
                body=response.text,
            )


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
