"""Application orchestrator.

Startup order: instance lock, backend supervisor, front-end channel. Anything
that ends the session (backend failure, an ``exit`` message, SIGINT/SIGTERM)
funnels into ``request_shutdown``; teardown then runs exactly once: close the
channel, cancel in-flight requests, kill the backend, release the lock.
"""

import asyncio
import logging
import signal
from typing import Mapping, Optional, Sequence, Tuple

from dtcontrol.config import Settings
from dtcontrol.core.exceptions import AlreadyRunningError, FatalError
from dtcontrol.core.instance_lock import InstanceLock
from dtcontrol.core.readiness import ReadinessGate
from dtcontrol.core.supervisor import ProcessSupervisor, backend_invocation
from dtcontrol.services.backend_client import BackendClient
from dtcontrol.services.bridge import RequestBridge
from dtcontrol.services.channel import FrontendChannel

logger = logging.getLogger(__name__)

BackendInvocation = Tuple[str, Sequence[str], Mapping[str, str]]


class Application:
    """Wires the control plane together and owns its lifecycle."""

    def __init__(
        self,
        settings: Settings,
        lock: Optional[InstanceLock] = None,
        backend: Optional[BackendInvocation] = None,
        client: Optional[BackendClient] = None,
    ) -> None:
        self.settings = settings
        self.lock = lock or InstanceLock(settings.lock_path)
        self.backend = backend or backend_invocation(settings)

        self.gate = ReadinessGate()
        self.supervisor = ProcessSupervisor(
            self.gate,
            grace_seconds=settings.readiness_grace_seconds,
            dev_mode=settings.dev_mode,
        )
        self.client = client or BackendClient(
            settings.api_uri,
            max_attempts=settings.retry_attempts,
            backoff_seconds=settings.retry_backoff_seconds,
            timeout=settings.http_timeout_seconds,
        )
        self.bridge = RequestBridge(
            self.client,
            self.gate,
            poll_interval=settings.poll_interval_seconds,
            poll_timeout=settings.poll_timeout_seconds,
            slow_threshold=settings.slow_request_seconds,
        )
        self.channel = FrontendChannel(
            self.bridge,
            host=settings.channel_host,
            port=settings.channel_port,
            on_exit=self.request_shutdown,
        )

        self.exit_code = 0
        self.fatal_error: Optional[FatalError] = None
        self.shutdown_count = 0
        self._shutdown_requested = asyncio.Event()
        self._torn_down = False

        self.supervisor.on_terminated(self._on_backend_terminated)

    def _on_backend_terminated(self, error: FatalError) -> None:
        self.fatal_error = error
        self.request_shutdown(exit_code=1)

    def request_shutdown(self, exit_code: int = 0) -> None:
        """Ask the application to stop. Only the first request sets the exit code."""
        if self._shutdown_requested.is_set():
            return
        self.exit_code = exit_code
        self._shutdown_requested.set()

    async def run(self) -> int:
        """Run until shutdown and return the process exit status."""
        try:
            self.lock.acquire()
        except AlreadyRunningError as e:
            logger.error("%s: exiting", e)
            await self.client.aclose()
            return 1

        try:
            await self.supervisor.start(*self.backend)
            if not self._shutdown_requested.is_set():
                await self.channel.start()
            await self._shutdown_requested.wait()
        finally:
            await self.shutdown()
        return self.exit_code

    async def shutdown(self) -> None:
        """Tear everything down. Later calls are no-ops."""
        if self._torn_down:
            return
        self._torn_down = True
        self.shutdown_count += 1
        logger.debug("received quit event - cleaning up and terminating")
        try:
            await self.channel.close()
            await self.bridge.cancel_all()
            await self.supervisor.stop()
            await self.client.aclose()
        finally:
            self.lock.release()
        if self.fatal_error is not None:
            logger.error("Session ended: %s", self.fatal_error)
        else:
            logger.info("Shutdown complete")


class SignalHandler:
    """Turns SIGINT/SIGTERM into an orderly application shutdown."""

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, app: Application):
        self.app = app
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous: dict = {}

    def setup(self):
        """Set up signal handlers, remembering the ones they replace."""
        self._loop = asyncio.get_running_loop()
        for sig in self.SIGNALS:
            self._previous[sig] = signal.signal(sig, self._handle_signal)

    def restore(self):
        """Put back the handlers that were installed before setup()."""
        for sig, previous in self._previous.items():
            signal.signal(sig, previous)
        self._previous.clear()
        self._loop = None

    def _handle_signal(self, signum, frame):
        logger.info("Received signal %d, shutting down", signum)
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.app.request_shutdown)
