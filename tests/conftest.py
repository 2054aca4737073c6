import asyncio
import os
from pathlib import Path
from typing import Any

import pytest

from crewx.domain.providers.provider_factory import ProviderFactory


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent unit tests from accidentally using developer machine env vars.

    If a test needs an env var, it should set it explicitly via monkeypatch.
    """
    for key in list(os.environ):
        if key.startswith("CREWX_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run each test in its own directory so task logs never land in the repo."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


@pytest.fixture(autouse=True)
def _restore_provider_registry():
    """Snapshot ProviderFactory registrations and restore them after the test."""
    # Importing the package registers the built-ins
    import crewx.domain.providers  # noqa: F401

    original_registry = dict(ProviderFactory._registry)

    yield

    ProviderFactory._registry.clear()
    ProviderFactory._registry.update(original_registry)


class FakeStream:
    """Stands in for asyncio.StreamReader; returns the payload then EOF."""

    def __init__(self, data: bytes) -> None:
        self._chunks = [data] if data else []

    async def read(self, n: int = -1) -> bytes:
        return self._chunks.pop(0) if self._chunks else b""


class FakeStdin:
    def __init__(self, broken: bool = False) -> None:
        self.buffer = bytearray()
        self.closed = False
        self._broken = broken

    def write(self, data: bytes) -> None:
        if self._broken:
            raise BrokenPipeError("stdin closed")
        self.buffer.extend(data)

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Child process double driven by canned stdout/stderr/exit code.

    With hang=True, wait() blocks until kill() is called.
    """

    def __init__(
        self,
        stdout: str | bytes = b"",
        stderr: str | bytes = b"",
        returncode: int = 0,
        *,
        hang: bool = False,
        broken_stdin: bool = False,
    ) -> None:
        if isinstance(stdout, str):
            stdout = stdout.encode("utf-8")
        if isinstance(stderr, str):
            stderr = stderr.encode("utf-8")
        self.stdin = FakeStdin(broken=broken_stdin)
        self.stdout = FakeStream(stdout)
        self.stderr = FakeStream(stderr)
        self.pid = 4242
        self.returncode: int | None = None
        self.killed = False
        self._exit_code = returncode
        self._hang = hang
        self._killed_event: asyncio.Event | None = None

    async def wait(self) -> int:
        if self._hang and not self.killed:
            self._killed_event = asyncio.Event()
            await self._killed_event.wait()
        self.returncode = -9 if self.killed else self._exit_code
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        if self._killed_event is not None:
            self._killed_event.set()

    @property
    def stdin_text(self) -> str:
        return self.stdin.buffer.decode("utf-8")


@pytest.fixture
def fake_process():
    """Factory for FakeProcess instances."""
    def _make(*args: Any, **kwargs: Any) -> FakeProcess:
        return FakeProcess(*args, **kwargs)

    return _make
