"""Stateful upstream session adapter with layered result caching.

Providers without an official API are driven through a forged browser
session: seed cookies, submit a login form, follow the redirects it
answers with, then fetch one resource page per device. This module holds
the provider-independent part of that flow:

- a cookie jar fed from every response's ``Set-Cookie`` headers
- one fetch cycle per cache miss (``Idle -> LoggingIn -> FollowingRedirects
  -> FetchingResources -> Done``, ``Failed`` from anywhere)
- concurrent per-device fetches with a timeout, isolated from each other
- a cached aggregate with a freshness window and stale fallbacks
- credential generations: ``invalidate()`` swaps in a new generation so a
  cycle still running against old credentials can never refill the cache

Subclasses supply ``login``, ``fetch_resource``, ``placeholder`` and
``has_reading``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    cast,
)

import httpx

from ..constants import DEVICE_FETCH_TIMEOUT
from ..errors import SessionError

logger = logging.getLogger(__name__)

TResult = TypeVar("TResult")

DeviceRecord = Dict[str, Any]
Secrets = Mapping[str, Optional[str]]


class CyclePhase(str, Enum):
    """Position of a fetch cycle in the login/fetch state machine."""

    IDLE = "idle"
    LOGGING_IN = "logging_in"
    FOLLOWING_REDIRECTS = "following_redirects"
    FETCHING_RESOURCES = "fetching_resources"
    DONE = "done"
    FAILED = "failed"


class ResultStatus(str, Enum):
    """How an aggregate result was produced."""

    FRESH = "fresh"
    CACHED = "cached"
    STALE = "stale"
    NOT_CONFIGURED = "not_configured"
    FAILED = "failed"


class SessionCookieJar:
    """Name -> value cookie store driven by ``Set-Cookie`` response headers.

    Attributes (path, expiry, domain) are ignored. A cookie set to an empty
    value is removed, so later requests omit it.
    """

    def __init__(self) -> None:
        self._cookies: Dict[str, str] = {}

    def update_from(self, response: httpx.Response) -> None:
        for header in response.headers.get_list("set-cookie"):
            pair = header.split(";", 1)[0]
            name, _, value = pair.partition("=")
            name = name.strip()
            if not name:
                continue
            value = value.strip()
            if value:
                self._cookies[name] = value
            else:
                self._cookies.pop(name, None)

    def header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def get(self, name: str) -> Optional[str]:
        return self._cookies.get(name)

    def names(self) -> List[str]:
        return list(self._cookies)

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __len__(self) -> int:
        return len(self._cookies)


@dataclass(slots=True)
class PortalSession:
    """Ephemeral per-cycle session: cookie jar plus authentication state."""

    jar: SessionCookieJar = field(default_factory=SessionCookieJar)
    headers: Dict[str, str] = field(default_factory=dict)
    authenticated: bool = False
    phase: CyclePhase = CyclePhase.IDLE


@dataclass(slots=True)
class CachedResult(Generic[TResult]):
    payload: List[TResult]
    fetched_at: float


@dataclass(slots=True)
class CachePolicy:
    """Freshness window and stale-fallback policy for one adapter."""

    freshness_seconds: float
    serve_stale: bool = True


@dataclass(slots=True)
class AggregateResult(Generic[TResult]):
    """Outcome of ``fetch_all``."""

    status: ResultStatus
    payload: Optional[List[TResult]] = None
    fetched_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.payload is not None

    @property
    def cached(self) -> bool:
        return self.status is ResultStatus.CACHED

    @property
    def stale(self) -> bool:
        return self.status is ResultStatus.STALE


_generation_ids = itertools.count(1)


class SessionGeneration(Generic[TResult]):
    """Session and cache state belonging to one set of credentials."""

    def __init__(self) -> None:
        self.number = next(_generation_ids)
        self.lock = asyncio.Lock()
        self.cache: Optional[CachedResult[TResult]] = None
        self.session: Optional[PortalSession] = None
        self.logins = 0


class ScrapedSessionAdapter(ABC, Generic[TResult]):
    """Template for cookie-session providers with a cached aggregate result."""

    provider: str = "provider"
    required_credentials: Tuple[str, ...] = ()

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        policy: Optional[CachePolicy] = None,
        device_timeout: float = DEVICE_FETCH_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self.policy = policy or CachePolicy(freshness_seconds=30.0)
        self.device_timeout = device_timeout
        self._clock = clock
        self._generation: SessionGeneration[TResult] = SessionGeneration()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def login(self, session: PortalSession, credentials: Secrets) -> None:
        """Authenticate ``session``; raise SessionError when that fails."""

    @abstractmethod
    async def fetch_resource(self, session: PortalSession, device: DeviceRecord) -> TResult:
        """Fetch and parse one device's resource using ``session``."""

    @abstractmethod
    def placeholder(self, device: DeviceRecord, error: BaseException) -> TResult:
        """Result entry for a device whose fetch failed."""

    @abstractmethod
    def has_reading(self, result: TResult) -> bool:
        """Whether ``result`` carries a confirmed primary reading."""

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=15.0)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        session: PortalSession,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one request inside ``session``.

        Redirects are never followed automatically; the caller decides which
        ``Location`` to chase. Cookies travel only through the session jar.
        """
        client = await self._get_client()
        headers = dict(session.headers)
        headers.update(kwargs.pop("headers", None) or {})
        cookie_header = session.jar.header()
        if cookie_header:
            headers["Cookie"] = cookie_header

        # Keep httpx's own jar out of the picture; the session jar is authoritative
        client.cookies.clear()
        try:
            response = await client.request(
                method, url, headers=headers, follow_redirects=False, **kwargs
            )
        finally:
            client.cookies.clear()

        session.jar.update_from(response)
        return response

    # ------------------------------------------------------------------
    # Generation / cache state
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation.number

    @property
    def cached_result(self) -> Optional[CachedResult[TResult]]:
        return self._generation.cache

    @property
    def session(self) -> Optional[PortalSession]:
        """Session of the most recent cycle in the current generation."""
        return self._generation.session

    @property
    def login_count(self) -> int:
        """Login handshakes started in the current generation."""
        return self._generation.logins

    def invalidate(self) -> None:
        """Drop session state and cached results for the current credentials.

        Takes effect immediately: the next ``fetch_all`` performs a full login,
        and any cycle still running against the previous generation writes
        only into that discarded generation.
        """
        old = self._generation
        self._generation = SessionGeneration()
        logger.info(
            f"{self.provider} adapter invalidated "
            f"(generation {old.number} -> {self._generation.number})"
        )

    def has_credentials(self, credentials: Optional[Secrets]) -> bool:
        if credentials is None:
            return False
        return all(credentials.get(name) for name in self.required_credentials)

    def _fresh(self, generation: SessionGeneration[TResult]) -> Optional[AggregateResult[TResult]]:
        cache = generation.cache
        if cache is None:
            return None
        if self._clock() - cache.fetched_at >= self.policy.freshness_seconds:
            return None
        return AggregateResult(ResultStatus.CACHED, list(cache.payload), cache.fetched_at)

    def _fallback(
        self,
        generation: SessionGeneration[TResult],
        status: ResultStatus,
        error: str,
    ) -> AggregateResult[TResult]:
        cache = generation.cache
        if cache is not None and self.policy.serve_stale:
            return AggregateResult(ResultStatus.STALE, list(cache.payload), cache.fetched_at, error)
        return AggregateResult(status, None, None, error)

    # ------------------------------------------------------------------
    # Fetch cycle
    # ------------------------------------------------------------------

    async def fetch_all(
        self,
        devices: Sequence[DeviceRecord],
        credentials: Optional[Secrets],
    ) -> AggregateResult[TResult]:
        """Return the aggregate result for ``devices``, from cache when possible."""
        generation = self._generation

        if not devices:
            return self._fallback(
                generation,
                ResultStatus.NOT_CONFIGURED,
                f"No {self.provider} devices configured",
            )

        if not self.has_credentials(credentials):
            logger.info(f"{self.provider}: missing credentials, skipping upstream login")
            return self._fallback(
                generation,
                ResultStatus.NOT_CONFIGURED,
                f"{self.provider.capitalize()} credentials not configured",
            )

        fresh = self._fresh(generation)
        if fresh is not None:
            return fresh

        async with generation.lock:
            # A concurrent caller may have refreshed the cache while we waited
            fresh = self._fresh(generation)
            if fresh is not None:
                return fresh
            return await self._run_cycle(generation, devices, cast(Secrets, credentials))

    async def _run_cycle(
        self,
        generation: SessionGeneration[TResult],
        devices: Sequence[DeviceRecord],
        credentials: Secrets,
    ) -> AggregateResult[TResult]:
        session = PortalSession()
        generation.session = session
        generation.logins += 1

        try:
            session.phase = CyclePhase.LOGGING_IN
            await self.login(session, credentials)
            session.phase = CyclePhase.FETCHING_RESOURCES
            outcomes = await asyncio.gather(
                *(self._fetch_one(session, device) for device in devices),
                return_exceptions=True,
            )
        except SessionError as exc:
            session.phase = CyclePhase.FAILED
            logger.error(f"{self.provider} session failed: {exc}")
            return self._fallback(generation, ResultStatus.FAILED, exc.message)
        except httpx.HTTPError as exc:
            session.phase = CyclePhase.FAILED
            logger.error(f"{self.provider} transport error: {exc}")
            return self._fallback(generation, ResultStatus.FAILED, str(exc) or type(exc).__name__)

        results: List[TResult] = []
        for outcome in outcomes:
            if isinstance(outcome, SessionError):
                session.phase = CyclePhase.FAILED
                logger.error(f"{self.provider} session lost mid-cycle: {outcome}")
                return self._fallback(generation, ResultStatus.FAILED, outcome.message)
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)

        session.phase = CyclePhase.DONE

        if any(self.has_reading(result) for result in results):
            fetched_at = self._clock()
            generation.cache = CachedResult(list(results), fetched_at)
            return AggregateResult(ResultStatus.FRESH, results, fetched_at)

        logger.warning(f"{self.provider}: no device returned a reading, cache left untouched")
        if generation.cache is not None and self.policy.serve_stale:
            return self._fallback(generation, ResultStatus.FAILED, "No device returned a reading")
        return AggregateResult(ResultStatus.FRESH, results, self._clock())

    async def _fetch_one(self, session: PortalSession, device: DeviceRecord) -> TResult:
        """Fetch one device; any failure except a session failure becomes a placeholder."""
        try:
            return await asyncio.wait_for(
                self.fetch_resource(session, device), timeout=self.device_timeout
            )
        except SessionError:
            raise
        except asyncio.TimeoutError as exc:
            logger.warning(f"{self.provider} device {device.get('id')} timed out")
            return self.placeholder(device, exc)
        except Exception as exc:
            logger.warning(f"{self.provider} device {device.get('id')} error: {exc}")
            return self.placeholder(device, exc)
