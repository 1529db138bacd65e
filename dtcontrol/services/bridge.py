"""
Request bridge between the front end and the backend HTTP API.

Each inbound request is handled as its own task:

    gate -> dispatch -> (optional delayed-operation polling) -> respond

Delayed operations: the backend may answer ``{"delayed": true}`` when it has
queued the work. The bridge then polls ``/status/<millis>`` until the status
body's ``requests`` map marks the requested target as done, and fetches the
target once more for the real payload.

Request-scoped failures never escape a task; they are returned to the caller
in the response that carries its request id.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable

from dtcontrol.core.exceptions import DeferredTimeoutError, RequestError, UnknownChannelError
from dtcontrol.core.readiness import ReadinessGate
from dtcontrol.models.messages import BridgeRequest, BridgeResponse, error_response, success_response
from dtcontrol.services.backend_client import BackendClient
from dtcontrol.services.routes import DEFAULT_ROUTES, STATUS_PREFIX, Route, build_target, route_table

logger = logging.getLogger(__name__)

Reply = Callable[[BridgeResponse], Awaitable[None]]


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class RequestBridge:
    """Dispatches named front-end requests to the backend."""

    def __init__(
        self,
        client: BackendClient,
        gate: ReadinessGate,
        routes: Iterable[Route] = DEFAULT_ROUTES,
        poll_interval: float = 0.1,
        poll_timeout: float | None = 600.0,
        slow_threshold: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        status_stamp: Callable[[], int] = _epoch_millis,
    ) -> None:
        self.client = client
        self.gate = gate
        self.routes = route_table(routes)
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.slow_threshold = slow_threshold
        self._clock = clock
        self._sleep = sleep
        self._status_stamp = status_stamp
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, request: BridgeRequest, reply: Reply) -> asyncio.Task:
        """Handle *request* in a new task and pass its response to *reply*."""
        task = asyncio.create_task(self._run(request, reply))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, request: BridgeRequest, reply: Reply) -> None:
        response = await self.handle(request)
        await reply(response)

    async def handle(self, request: BridgeRequest) -> BridgeResponse:
        """Run one request to completion and build its correlated response."""
        start = self._clock()
        try:
            result = await self._dispatch(request)
        except RequestError as e:
            logger.error("HTTP API error for %s %r: %s", request.channel, request.request_id, e)
            return error_response(request.channel, request.request_id, e)
        except Exception as e:
            logger.exception("HTTP API error for %s %r", request.channel, request.request_id)
            return error_response(request.channel, request.request_id, e)
        finally:
            duration = self._clock() - start
            if duration >= self.slow_threshold:
                logger.warning(
                    "main %s %r took %.3f secs, sending the response to the front end",
                    request.channel, request.request_id, duration,
                )
        return success_response(request, result)

    async def _dispatch(self, request: BridgeRequest) -> dict[str, Any]:
        route = self.routes.get(request.channel)
        if route is None:
            raise UnknownChannelError(request.channel)

        remaining = self.gate.remaining()
        if remaining > 0:
            logger.info("request for %s too early, sleeping for %.3f secs", request.channel, remaining)
        await self.gate.wait_until_ready()

        target = build_target(route.prefix, request.params)
        result = await self.client.fetch_json(target)
        if route.deferrable and result.get("delayed") is True:
            result = await self._await_delayed(target)
        return result

    async def _await_delayed(self, target: str) -> dict[str, Any]:
        """Poll the status endpoint until *target* completes, then re-fetch it."""
        logger.debug("request %s delayed, polling for completion", target)
        started = self._clock()
        polls = 0
        while True:
            status = await self.client.fetch_json(f"{STATUS_PREFIX}{self._status_stamp()}")
            polls += 1
            requests = status.get("requests")
            if isinstance(requests, dict) and requests.get(target):
                logger.debug("request %s completed after %d status polls", target, polls)
                return await self.client.fetch_json(target)
            if self.poll_timeout is not None and self._clock() - started >= self.poll_timeout:
                raise DeferredTimeoutError(target, self.poll_timeout)
            await self._sleep(self.poll_interval)

    async def cancel_all(self) -> None:
        """Cancel every in-flight request task (application shutdown)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
