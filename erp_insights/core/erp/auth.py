"""
AUTH MODULE - Bearer token for the ERP gateway

Purpose:
    1. Log in once and reuse the token for every query
    2. Collapse concurrent logins into a single request (single-flight)
    3. Retry slow/unhealthy identity provider responses with linear backoff
    4. Forget the token when the gateway says the session is gone

One TokenManager per process. It is created in the app lifespan and injected
wherever a token is needed, so tests can build their own isolated instance.
"""

import asyncio
import logging
from typing import Dict, Optional

import httpx

from erp_insights.core.erp.errors import AuthError, DecodeError

logger = logging.getLogger(__name__)


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled before a failed login finished
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"ERP login failed: {task.exception()}")


class TokenManager:
    """Acquires, caches and invalidates the ERP bearer token."""

    MAX_RETRIES = 3

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        login_url: str,
        credentials: Dict[str, str],
        timeout: float = 30.0,
        base_delay: float = 2.0,
    ):
        """
        Args:
            http_client: Shared async HTTP client
            login_url: Identity endpoint of the ERP gateway
            credentials: Header credentials (token, appkey, username, password)
            timeout: Timeout for one login request (seconds)
            base_delay: Backoff unit, attempt N waits base_delay * N
        """
        self.http_client = http_client
        self.login_url = login_url
        self.credentials = credentials
        self.timeout = timeout
        self.base_delay = base_delay

        self._token: Optional[str] = None
        self._pending: Optional[asyncio.Task] = None
        self.login_requests = 0

    @property
    def has_token(self) -> bool:
        return self._token is not None

    async def get_token(self) -> str:
        """
        Return the cached token, or acquire one.

        If an acquisition is already running, wait for that same one instead
        of starting another login.

        Raises:
            AuthError: credentials rejected or identity provider unreachable
        """
        if self._token is not None:
            return self._token

        if self._pending is None:
            self._pending = asyncio.create_task(self._acquire())
            self._pending.add_done_callback(_retrieve_exception)

        # Shield: a cancelled caller must not cancel the login other callers wait on
        return await asyncio.shield(self._pending)

    def invalidate(self) -> None:
        """Drop the cached token. The next get_token() logs in again."""
        if self._token is not None:
            logger.info("ERP token invalidated")
        self._token = None

    async def _acquire(self) -> str:
        try:
            token = await self._login_with_retries()
            self._token = token
            return token
        finally:
            self._pending = None

    async def _login_with_retries(self) -> str:
        last_error: Optional[Exception] = None

        for attempt in range(self.MAX_RETRIES + 1):
            if attempt > 0:
                logger.warning(
                    f"Retrying ERP authentication ({attempt}/{self.MAX_RETRIES})..."
                )
                await asyncio.sleep(self.base_delay * attempt)

            try:
                return await self._login()
            except httpx.TimeoutException as error:
                last_error = error
            except httpx.HTTPStatusError as error:
                if error.response.status_code < 500:
                    raise AuthError(
                        f"ERP authentication failed: HTTP {error.response.status_code}"
                    ) from error
                last_error = error
            except httpx.HTTPError as error:
                raise AuthError(f"ERP authentication failed: {error}") from error

        if isinstance(last_error, httpx.TimeoutException):
            message = "Timeout connecting to the ERP"
        else:
            message = str(last_error)
        raise AuthError(f"ERP authentication failed: {message}") from last_error

    async def _login(self) -> str:
        logger.info("Requesting a new ERP authentication token...")
        self.login_requests += 1

        response = await self.http_client.post(
            self.login_url,
            json={},
            headers=self.credentials,
            timeout=self.timeout,
        )
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as error:
            raise AuthError("Login response is not valid JSON") from error

        token = None
        if isinstance(data, dict):
            token = data.get("bearerToken") or data.get("token")
        if not token:
            raise AuthError("Token not found in login response.") from DecodeError(
                "login response carried neither bearerToken nor token"
            )

        logger.info("ERP token acquired")
        return token
