"""Control plane configuration."""

import os
import platform
import sys
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DATA_DIR_OVERRIDE = Path("etc") / "data-dir.txt"


def _default_install_dir(dev_mode: bool) -> Path:
    if dev_mode:
        return Path.cwd()
    return Path(sys.executable).resolve().parent.parent


def _default_data_root(install_dir: Path, dev_mode: bool) -> Path:
    """Resolve where logs, data and the lock file live.

    Windows installs keep their state under %APPDATA%; everything else keeps it
    beside the install. A one-line ``etc/data-dir.txt`` overrides both.
    """
    root = install_dir
    appdata = os.environ.get("APPDATA")
    if platform.system() == "Windows" and not dev_mode and appdata:
        root = Path(appdata) / "DaedalusTurbo"
    override = install_dir / _DATA_DIR_OVERRIDE
    if override.exists():
        text = override.read_text(encoding="utf-8").strip()
        if text:
            root = Path(text)
    return root


class Settings(BaseSettings):
    """Settings loaded from DT_EXPLORER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DT_EXPLORER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Development mode: no backend binary is managed, requests pass at once
    dev_mode: bool = False

    # Filesystem layout (resolved in _resolve_paths when left unset)
    install_dir: Path | None = None
    data_root: Path | None = None
    backend_command: Path | None = None

    # Backend HTTP API
    api_ip: str = "127.0.0.1"
    api_port: int = 55556

    # Front-end message channel
    channel_host: str = "127.0.0.1"
    channel_port: int = 55557

    # Startup heuristic: the backend is assumed ready this long after spawn
    readiness_grace_seconds: float = 2.0

    # Bounded retry for transport failures
    retry_attempts: int = 3
    retry_backoff_seconds: float = 2.0
    http_timeout_seconds: float = 30.0

    # Delayed-operation polling
    poll_interval_seconds: float = 0.1
    poll_timeout_seconds: float | None = 600.0

    # Requests slower than this get a warning in the log
    slow_request_seconds: float = 0.1

    # Logging
    log_level: str = "info"
    log_format: str = "text"

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        if self.install_dir is None:
            self.install_dir = _default_install_dir(self.dev_mode)
        if self.data_root is None:
            self.data_root = _default_data_root(self.install_dir, self.dev_mode)
        if self.backend_command is None:
            self.backend_command = Path(sys.executable).resolve().parent / "dt"
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        return self

    @property
    def api_uri(self) -> str:
        return f"http://{self.api_ip}:{self.api_port}"

    @property
    def data_dir(self) -> Path:
        return self.data_root / "data"

    @property
    def log_dir(self) -> Path:
        return self.data_root / "log"

    @property
    def api_log_path(self) -> Path:
        return self.log_dir / "dt-api.log"

    @property
    def ui_log_path(self) -> Path:
        return self.log_dir / "dt-explorer.log"

    @property
    def etc_dir(self) -> Path:
        return self.install_dir / "etc" / "mainnet"

    @property
    def lock_path(self) -> Path:
        return self.data_dir / "dt-explorer.pid"


def get_settings(**overrides) -> Settings:
    """Build settings from the environment with explicit overrides applied."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})
