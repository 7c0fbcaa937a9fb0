from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

import httpx
from opentelemetry import trace

from scraper_client.core.config import Settings, get_settings
from scraper_client.core.environment import (
    ClientEnvironment,
    LoginUser,
    LoginUsersRestriction,
    load_environment,
    validate_login_users,
)
from scraper_client.core.errors import ConfigError, NotAuthenticatedError, ScraperClientError
from scraper_client.schemas.cv import CVToScan
from scraper_client.services.reference_cache import (
    DEFAULT_TTL_HOURS,
    Clock,
    Reference,
    ReferenceCache,
    utc_now,
    validate_reference,
)
from scraper_client.services.server_conn import ServerConnection
from scraper_client.services.transport import RetryPolicy

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Record = CVToScan | Mapping[str, Any]


def reference_of(record: Record) -> Reference:
    if isinstance(record, CVToScan):
        reference = record.reference_number
    else:
        reference = record.get("referenceNumber")
    return validate_reference(reference)


def as_payload(record: Record) -> dict[str, Any]:
    if isinstance(record, CVToScan):
        return record.to_payload()
    return dict(record)


class ScraperClient:
    """Submits scraped CVs to a primary RT-CV server and its replicas.

    The primary server decides whether a submission succeeded. Alternative
    servers get the same CV concurrently and their failures are only
    logged. Reference numbers already sent within their TTL are skipped.
    """

    def __init__(
        self,
        login_users_restriction: LoginUsersRestriction = LoginUsersRestriction.NONE,
        environment: ClientEnvironment | None = None,
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = utc_now,
    ) -> None:
        settings = settings or get_settings()
        if environment is None:
            environment = load_environment(settings.env_file, settings.env)
        validate_login_users(environment, login_users_restriction)

        self.environment = environment
        self.dummy_mode = settings.dummy_mode
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        retry_policy = RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            backoff_step_seconds=settings.retry_backoff_step_seconds,
        )
        self.servers = [
            ServerConnection.from_config(server, client=self._http_client, retry_policy=retry_policy)
            for server in environment.servers
        ]
        self._reference_cache = ReferenceCache(clock=clock)
        self._authenticated = False
        self._background: set[asyncio.Task[None]] = set()

    async def __aenter__(self) -> "ScraperClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def primary(self) -> ServerConnection:
        return self.servers[0]

    @property
    def secondaries(self) -> list[ServerConnection]:
        return self.servers[1:]

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def login_users(self) -> list[LoginUser]:
        return list(self.environment.login_users)

    @property
    def login_user(self) -> LoginUser:
        if not self.environment.login_users:
            raise ConfigError("no login users configured")
        return self.environment.login_users[0]

    async def authenticate(self) -> "ScraperClient":
        if self.dummy_mode or self._authenticated:
            return self

        with tracer.start_as_current_span("scraper_client.authenticate") as span:
            span.set_attribute("scraper_client.server_count", len(self.servers))
            await asyncio.gather(*(server.verify_scraper_capability() for server in self.servers))
        self._authenticated = True
        logger.info("api key has the scraper role on %s server(s)", len(self.servers))
        return self

    def has_cached_reference(self, reference: Reference) -> bool:
        return self._reference_cache.has(reference)

    def set_cached_reference(self, reference: Reference, ttl_hours: int = DEFAULT_TTL_HOURS) -> None:
        self._reference_cache.set(reference, ttl_hours=ttl_hours)

    async def submit(self, record: Record) -> bool:
        """Send ``record`` unless its reference number was sent recently.

        Returns False when the record was skipped as a duplicate. The
        reference is cached before anything is sent, so a failed primary
        submission is not retried by later calls.
        """

        reference = reference_of(record)
        if not self.dummy_mode and not self._authenticated:
            raise NotAuthenticatedError("call authenticate() before submitting CVs")

        with tracer.start_as_current_span("scraper_client.submit") as span:
            span.set_attribute("scraper_client.reference_number", str(reference))
            if not self._reference_cache.claim(reference):
                span.set_attribute("scraper_client.duplicate", True)
                logger.debug("skipping already sent reference %s", reference)
                return False
            if self.dummy_mode:
                return True

            payload = as_payload(record)
            for server in self.secondaries:
                self._spawn(self._submit_best_effort(server, reference, payload))
            await self.primary.submit_record(payload)
            return True

    async def submit_all(self, records: Sequence[Record]) -> None:
        """Forward the full list of currently listed CVs to every server."""

        for record in records:
            reference_of(record)
        if self.dummy_mode:
            return
        if not self._authenticated:
            raise NotAuthenticatedError("call authenticate() before submitting CVs")

        payloads = [as_payload(record) for record in records]
        for server in self.secondaries:
            self._spawn(self._submit_all_best_effort(server, payloads))
        await self.primary.submit_records(payloads)

    async def drain(self) -> None:
        """Wait for every outstanding alternative-server submission."""

        while self._background:
            await asyncio.gather(*list(self._background))

    async def aclose(self) -> None:
        try:
            await self.drain()
        finally:
            if self._owns_http_client:
                await self._http_client.aclose()

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _submit_best_effort(self, server: ServerConnection, reference: Reference, payload: dict[str, Any]) -> None:
        try:
            await server.submit_record(payload)
        except ScraperClientError as exc:
            logger.warning("alternative server %s rejected reference %s: %s", server.server_location, reference, exc)

    async def _submit_all_best_effort(self, server: ServerConnection, payloads: list[dict[str, Any]]) -> None:
        try:
            await server.submit_records(payloads)
        except ScraperClientError as exc:
            logger.warning("alternative server %s rejected cv list: %s", server.server_location, exc)
