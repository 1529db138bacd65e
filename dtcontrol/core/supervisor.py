"""Backend process supervisor.

Launches the ``dt http-api`` server as a child process and reports its end as a
single terminal lifecycle event. The backend is never restarted: a spawn
failure or an exit for any reason ends the session, and the application
orchestrator reacts to the event by tearing everything down.
"""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from dtcontrol.config import Settings
from dtcontrol.core.exceptions import BackendExitedError, FatalError, SpawnError
from dtcontrol.core.readiness import ReadinessGate

logger = logging.getLogger(__name__)

DEBUG_ENV_VAR = "DT_DEBUG"


class ServerState(str, Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    EXITED = "exited"


TerminationCallback = Callable[[FatalError], None]


def backend_invocation(
    settings: Settings,
    environ: Optional[Mapping[str, str]] = None,
) -> Tuple[str, List[str], Dict[str, str]]:
    """Build the command, arguments and environment for the API server."""
    if environ is None:
        environ = os.environ
    args = [
        'http-api',
        str(settings.data_dir),
        f'--ip={settings.api_ip}',
        f'--port={settings.api_port}',
    ]
    env = {
        'DT_LOG': str(settings.api_log_path),
        'DT_ETC': str(settings.etc_dir),
    }
    if DEBUG_ENV_VAR in environ:
        env[DEBUG_ENV_VAR] = environ[DEBUG_ENV_VAR]
    return str(settings.backend_command), args, env


class ProcessSupervisor:
    """Owns the backend child process and the readiness deadline."""

    def __init__(
        self,
        gate: ReadinessGate,
        grace_seconds: float = 2.0,
        dev_mode: bool = False,
    ) -> None:
        self.gate = gate
        self.grace_seconds = grace_seconds
        self.dev_mode = dev_mode
        self.state = ServerState.NOT_STARTED
        self.process: Optional[asyncio.subprocess.Process] = None
        self.termination: Optional[FatalError] = None

        self._callbacks: List[TerminationCallback] = []
        self._terminated = asyncio.Event()
        self._watch_task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    def on_terminated(self, callback: TerminationCallback) -> None:
        """Register *callback* to receive the terminal event (at most once)."""
        self._callbacks.append(callback)

    async def wait_terminated(self) -> FatalError:
        """Wait for the backend to fail or exit and return the cause."""
        await self._terminated.wait()
        assert self.termination is not None
        return self.termination

    async def start(
        self,
        command: str | Path,
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Spawn the backend. Outcomes arrive through the terminal event."""
        if self.state != ServerState.NOT_STARTED:
            raise RuntimeError(f"API server supervisor already {self.state.value}")

        if self.dev_mode:
            logger.info("Development mode: not starting the API server")
            self.gate.open_now()
            self.state = ServerState.STARTING
            return

        logger.info("Starting the API server %s %s %s", command, list(args), dict(env or {}))
        self.state = ServerState.STARTING
        self.gate.set_deadline(self.grace_seconds)
        try:
            self.process = await asyncio.create_subprocess_exec(
                str(command),
                *args,
                env=dict(env) if env is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error("The API server failed: %s", e)
            self._terminate(SpawnError(command, e))
            return

        logger.debug("API server running with pid %d", self.process.pid)
        self._watch_task = asyncio.create_task(self._watch(self.process))

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        if self._stopping:
            return
        if returncode < 0:
            error = BackendExitedError(signal=-returncode)
            logger.error("The API server exited due to signal %d, terminating the UI", -returncode)
        else:
            error = BackendExitedError(returncode=returncode)
            logger.error("The API server exited with code: %d, terminating the UI", returncode)
        self._terminate(error)

    def _terminate(self, error: FatalError) -> None:
        self.state = ServerState.EXITED
        if self._terminated.is_set():
            return
        self.termination = error
        self._terminated.set()
        for callback in self._callbacks:
            callback(error)

    async def stop(self) -> None:
        """Force-kill the backend if it is still running."""
        self._stopping = True
        process = self.process
        if process is not None and process.returncode is None:
            logger.info("Killing the API server (pid %d)", process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        if self._watch_task is not None:
            await asyncio.gather(self._watch_task, return_exceptions=True)
            self._watch_task = None
        self.state = ServerState.EXITED
