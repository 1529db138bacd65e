"""
HTTP client for the local ``dt http-api`` server.

Every call goes through a bounded retry that only covers transport failures
(connection refused, reset, timeouts). Any response that actually arrives is
returned as-is, including one whose body reports an application error.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from dtcontrol.core.exceptions import ResponseFormatError, TransportExhaustedError

logger = logging.getLogger(__name__)


class BackendClient:
    """Thin async wrapper around ``httpx.AsyncClient`` for the backend API."""

    def __init__(
        self,
        base_url: str,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=5.0),
            transport=transport,
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "fetch attempt %d for %s failed: %s",
            retry_state.attempt_number,
            retry_state.args[0] if retry_state.args else "?",
            exc,
        )

    async def fetch(self, target: str) -> httpx.Response:
        """GET *target*, retrying transport failures only.

        Raises:
            TransportExhaustedError: If every attempt failed before a response
                was received.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.backoff_seconds),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=self._log_retry,
            sleep=self._sleep,
        )
        try:
            return await retrying(self._get, target)
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error("Giving up on %s%s after %d attempts: %s", self.base_url, target, self.max_attempts, cause)
            raise TransportExhaustedError(self.base_url + target, self.max_attempts, cause) from cause

    async def _get(self, target: str) -> httpx.Response:
        return await self._client.get(target)

    async def fetch_json(self, target: str) -> dict[str, Any]:
        """GET *target* and decode the body as a single JSON object."""
        response = await self.fetch(target)
        if response.is_error:
            logger.debug("%s answered HTTP %d", target, response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise ResponseFormatError(f"response to {target} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ResponseFormatError(
                f"response to {target} is a {type(data).__name__}, expected a JSON object"
            )
        return data
