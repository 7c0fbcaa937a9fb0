from __future__ import annotations

import asyncio
import hashlib
from typing import Any, Mapping, Sequence

import httpx

from scraper_client.core.environment import ServerConfig
from scraper_client.core.errors import CapabilityError, SubmitError, TransportError
from scraper_client.services.transport import DEFAULT_RETRY_POLICY, RetryPolicy, Sleep, send_with_retry

KEYINFO_PATH = "/api/v1/auth/keyinfo"
SCAN_CV_PATH = "/api/v1/scraper/scanCV"
ALL_CVS_PATH = "/api/v1/scraper/allCVs"
SCRAPER_ROLE = 1


def build_auth_header(api_key_id: str, api_key: str) -> str:
    hashed_api_key = hashlib.sha512(api_key.encode("utf-8")).hexdigest()
    return f"Basic {api_key_id}:{hashed_api_key}"


class ServerConnection:
    """One authenticated channel to a single RT-CV server."""

    def __init__(
        self,
        server_location: str,
        api_key_id: str,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.server_location = server_location.rstrip("/")
        self.auth_header = build_auth_header(api_key_id, api_key)
        self.headers = {
            "Content-Type": "application/json",
            "Authorization": self.auth_header,
        }
        self._client = client
        self._timeout_seconds = timeout_seconds
        self._retry_policy = retry_policy
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: ServerConfig, **kwargs: Any) -> "ServerConnection":
        return cls(config.server_location, config.api_key_id, config.api_key, **kwargs)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(server_location={self.server_location!r})"

    async def verify_scraper_capability(self) -> None:
        try:
            response = await self._request("GET", KEYINFO_PATH)
        except httpx.HTTPError as exc:
            raise CapabilityError(self.server_location, f"keyinfo request failed: {exc}") from exc
        if response.status_code >= 400:
            raise CapabilityError(
                self.server_location,
                f"keyinfo request failed with [{response.status_code}] {response.reason_phrase}: {response.text}",
                status_code=response.status_code,
            )

        try:
            key_info = response.json()
        except ValueError as exc:
            raise CapabilityError(self.server_location, "keyinfo response is not valid json") from exc
        roles = key_info.get("roles") if isinstance(key_info, dict) else None
        if not isinstance(roles, list) or not any(
            isinstance(entry, dict) and entry.get("role") == SCRAPER_ROLE for entry in roles
        ):
            raise CapabilityError(
                self.server_location,
                f"api key for {self.server_location} does not have the scraper role",
            )

    async def submit_record(self, record: Mapping[str, Any]) -> Any:
        return await self._submit(SCAN_CV_PATH, {"cv": record})

    async def submit_records(self, records: Sequence[Mapping[str, Any]]) -> Any:
        return await self._submit(ALL_CVS_PATH, {"cvs": list(records)})

    async def _submit(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self._request("POST", path, payload)
        except (TransportError, httpx.HTTPError) as exc:
            raise SubmitError(self.server_location, detail=str(exc)) from exc

        if response.status_code >= 400:
            raise SubmitError(
                self.server_location,
                status_code=response.status_code,
                status_text=response.reason_phrase,
                body=response.text,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def _request(self, method: str, path: str, payload: Any | None = None) -> httpx.Response:
        request = httpx.Request(
            method,
            f"{self.server_location}{path}",
            headers=self.headers,
            json=payload,
        )
        if self._client is not None:
            return await self._send(self._client, request)
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as temp_client:
            return await self._send(temp_client, request)

    async def _send(self, client: httpx.AsyncClient, request: httpx.Request) -> httpx.Response:
        return await send_with_retry(
            client,
            request,
            server_location=self.server_location,
            policy=self._retry_policy,
            sleep=self._sleep,
        )
