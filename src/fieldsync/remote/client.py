"""
Async client for the field-operations API.

The sync engine talks to the server through a single call,
send(endpoint, method, body), which returns the decoded JSON body or raises:

  - AuthRequiredError  on 401 (token missing, expired or revoked)
  - NetworkError       on any other non-2xx status, transport failure,
                       timeout, or a body that is not UTF-8 JSON
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from fieldsync.errors import AuthRequiredError, NetworkError
from fieldsync.remote.auth import CredentialStore

logger = logging.getLogger(__name__)

# Endpoints used by the sync engine
UPLOAD_PHOTO = "/api/mobile/uploads"
SYNC_AUDITS = "/api/mobile/sync/audits"
SYNC_JOB_CARDS = "/api/mobile/sync/job-cards"
USER_SCHEDULE = "/api/mobile/user/schedule"
USER_JOB_CARDS = "/api/mobile/user/job-cards"
USER_EARNINGS = "/api/mobile/user/earnings"


class RemoteApiClient:
    """
    Thin async wrapper over httpx.AsyncClient.

    The underlying AsyncClient is created lazily and reused; call close()
    on shutdown.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Server root, e.g. "https://field.example.com".
            credentials: Source of the bearer token, read on every request.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def send(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Issue one request and return the decoded JSON response body."""
        headers = {"Accept": "application/json"}
        token = self.credentials.load_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug("%s %s", method, endpoint)
        try:
            response = await self._get_client().request(
                method, endpoint, json=body, headers=headers
            )
        except httpx.RequestError as exc:  # ConnectError, TimeoutException, ...
            raise NetworkError(f"{method} {endpoint} failed: {exc!r}") from exc

        if response.status_code == 401:
            raise AuthRequiredError(f"{method} {endpoint} rejected credentials (401)")
        if response.is_error:
            raise NetworkError(
                f"{method} {endpoint} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise NetworkError(
                f"{method} {endpoint} returned a non-JSON body",
                status_code=response.status_code,
            ) from exc
