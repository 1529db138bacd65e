"""Control plane exceptions.

Fatal errors end the whole application; request errors are reported back to
the single front-end request that caused them.
"""

from typing import Optional


class ControlPlaneError(Exception):
    """Base exception for the control plane."""

    pass


# ---------------------------------------------------------------------------
# Application-fatal
# ---------------------------------------------------------------------------


class FatalError(ControlPlaneError):
    """Raised when the session cannot continue."""

    pass


class AlreadyRunningError(FatalError):
    """Raised when another live controller owns the lock file."""

    def __init__(self, pid: Optional[int], lock_path: object) -> None:
        super().__init__(f"Discovered another UI process with pid {pid} (lock {lock_path})")
        self.pid = pid
        self.lock_path = lock_path


class SpawnError(FatalError):
    """Raised when the backend executable could not be launched."""

    def __init__(self, command: object, cause: BaseException) -> None:
        super().__init__(f"the API server {command} failed to start: {cause}")
        self.command = command
        self.cause = cause


class BackendExitedError(FatalError):
    """Raised when the backend process terminates during the session."""

    def __init__(self, returncode: int | None = None, signal: int | None = None) -> None:
        if signal is not None:
            message = f"the API server exited due to signal {signal}"
        else:
            message = f"the API server exited with code: {returncode}"
        super().__init__(message)
        self.returncode = returncode
        self.signal = signal


# ---------------------------------------------------------------------------
# Request-scoped
# ---------------------------------------------------------------------------


class RequestError(ControlPlaneError):
    """Raised for failures that only affect one bridged request."""

    pass


class NotReadyError(RequestError):
    """Raised when a request arrives before the backend was ever started."""

    def __init__(self) -> None:
        super().__init__("API server has not been started!")


class TransportExhaustedError(RequestError):
    """Raised when every retry attempt of an HTTP call failed in transport."""

    def __init__(self, url: str, attempts: int, cause: BaseException | None = None) -> None:
        super().__init__(f"failed to fetch {url} after {attempts} retries")
        self.url = url
        self.attempts = attempts
        self.cause = cause


class ResponseFormatError(RequestError):
    """Raised when the backend body is not a single JSON object."""

    pass


class DeferredTimeoutError(RequestError):
    """Raised when a delayed operation does not complete in time."""

    def __init__(self, target: str, timeout: float) -> None:
        super().__init__(f"delayed request {target} did not complete within {timeout:g} secs")
        self.target = target
        self.timeout = timeout


class UnknownChannelError(RequestError):
    """Raised for a front-end channel name with no route."""

    def __init__(self, channel: str) -> None:
        super().__init__(f"unknown request channel: {channel!r}")
        self.channel = channel
