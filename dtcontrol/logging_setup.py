"""Logging configuration for the control plane."""

import logging
import sys

from dtcontrol.config import Settings

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
JSON_FORMAT = '{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","message":"%(message)s"}'


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """Log to stderr and to the UI log file under the data root."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    fmt = JSON_FORMAT if settings.log_format == "json" else TEXT_FORMAT

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.ui_log_path, encoding="utf-8"))
    except OSError as e:
        # The console handler still works; keep going without the file.
        print(f"Could not open log file {settings.ui_log_path}: {e}", file=sys.stderr)

    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)
    # httpx logs every request at INFO; the bridge already reports what matters.
    logging.getLogger("httpx").setLevel(logging.WARNING)
