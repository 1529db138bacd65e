"""Shared fixtures for control plane tests.

Provides settings rooted in a temp directory, a recording fake sleep, and a
factory for BackendClient instances backed by httpx.MockTransport.
"""

import subprocess
import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest

from dtcontrol.config import Settings
from dtcontrol.core.readiness import ReadinessGate
from dtcontrol.services.backend_client import BackendClient


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every path under tmp_path and an ephemeral channel port."""
    return Settings(
        install_dir=tmp_path / "install",
        data_root=tmp_path / "root",
        backend_command=tmp_path / "install" / "bin" / "dt",
        channel_port=0,
        readiness_grace_seconds=0.0,
    )


# ---------------------------------------------------------------------------
# Processes
# ---------------------------------------------------------------------------

@pytest.fixture
def live_pid():
    """PID of a sleeping child process that stays alive for the test."""
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
    yield proc.pid
    proc.kill()
    proc.wait()


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

class FakeSleep:
    """Records requested sleep durations without waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def open_gate() -> ReadinessGate:
    """A readiness gate whose deadline has already passed."""
    gate = ReadinessGate()
    gate.open_now()
    return gate


# ---------------------------------------------------------------------------
# Backend client factory
# ---------------------------------------------------------------------------

@pytest.fixture
async def client_factory(fake_sleep):
    """Factory: build a BackendClient whose requests go to *handler*.

    Usage:
        client = client_factory(lambda request: httpx.Response(200, json={}))
    """
    clients: list[BackendClient] = []

    def _factory(handler: Callable, **kwargs) -> BackendClient:
        kwargs.setdefault("sleep", fake_sleep)
        client = BackendClient(
            "http://127.0.0.1:55556",
            transport=httpx.MockTransport(handler),
            **kwargs,
        )
        clients.append(client)
        return client

    yield _factory

    for client in clients:
        await client.aclose()
