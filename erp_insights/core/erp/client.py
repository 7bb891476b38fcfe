"""
CLIENT MODULE - One authenticated call to the ERP query endpoint

Purpose:
    1. Attach the bearer token from TokenManager
    2. Refresh the token once when the gateway answers 401/403
    3. Retry timeouts and 5xx with linear backoff
    4. Return the raw JSON body (decoding is mapper.py's job)

Attempt ceiling per call: 1 + MAX_RETRIES, plus one extra call after a
token refresh.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from erp_insights.core.erp.auth import TokenManager
from erp_insights.core.erp.errors import (
    AuthError,
    DecodeError,
    ErpRequestError,
    TransientError,
)
from erp_insights.core.erp.queries import QueryPayload

logger = logging.getLogger(__name__)

AUTH_FAILURE_CODES = (401, 403)


class RequestExecutor:
    """Issues authenticated ERP requests with a bounded retry policy."""

    MAX_RETRIES = 2
    MAX_AUTH_REFRESHES = 1

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_manager: TokenManager,
        timeout: float = 30.0,
        base_delay: float = 1.0,
        auth_refresh_delay: float = 0.5,
    ):
        self.http_client = http_client
        self.token_manager = token_manager
        self.timeout = timeout
        self.base_delay = base_delay
        self.auth_refresh_delay = auth_refresh_delay

    async def execute(self, endpoint: str, payload: QueryPayload) -> Dict[str, Any]:
        """
        Send one query and return the raw response body.

        Args:
            endpoint: Full URL of the query service
            payload: Query to send

        Returns:
            Parsed JSON body, untouched

        Raises:
            AuthError: the session expired twice in a row
            TransientError: timeouts/5xx outlived every retry
            ErpRequestError: any other HTTP failure (not retried)
        """
        body = payload.to_request_body()
        transient_attempts = 0
        auth_refreshes = 0
        last_error: Optional[Exception] = None

        while transient_attempts <= self.MAX_RETRIES:
            token = await self.token_manager.get_token()

            try:
                response = await self.http_client.post(
                    endpoint,
                    json=body,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                    timeout=self.timeout,
                )
            except httpx.TimeoutException as error:
                last_error = error
                transient_attempts += 1
                await self._backoff(transient_attempts, payload, "timeout")
                continue

            if response.status_code in AUTH_FAILURE_CODES:
                self.token_manager.invalidate()
                if auth_refreshes >= self.MAX_AUTH_REFRESHES:
                    raise AuthError("Session expired. Try again.")

                auth_refreshes += 1
                logger.warning("ERP token expired, fetching a new one...")
                await asyncio.sleep(self.auth_refresh_delay)
                continue

            if response.status_code >= 500:
                last_error = ErpRequestError(
                    f"ERP responded with HTTP {response.status_code}",
                    status_code=response.status_code,
                )
                transient_attempts += 1
                await self._backoff(
                    transient_attempts, payload, f"HTTP {response.status_code}"
                )
                continue

            if response.is_error:
                raise ErpRequestError(
                    f"ERP request for {payload.root_entity} failed with HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as error:
                raise DecodeError(
                    f"ERP response for {payload.root_entity} is not valid JSON"
                ) from error

        raise TransientError(
            f"ERP request for {payload.root_entity} failed after "
            f"{self.MAX_RETRIES + 1} attempts: {last_error}"
        ) from last_error

    async def _backoff(self, attempt: int, payload: QueryPayload, reason: str) -> None:
        # No sleep after the final attempt, the loop is about to give up
        if attempt > self.MAX_RETRIES:
            return
        logger.warning(
            f"Retrying {payload.root_entity} request ({attempt}/{self.MAX_RETRIES}) after {reason}..."
        )
        await asyncio.sleep(self.base_delay * attempt)
