"""Shared pytest fixtures for firecracker-control tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from firecracker_control.config import VmConfig
from firecracker_control.models import (
    Balloon,
    BootSource,
    Drive,
    FirecrackerModel,
    InstanceInfo,
    MachineConfiguration,
    NetworkInterface,
)
from firecracker_control.retry import RetryConfig
from firecracker_control.settings import Settings

# ============================================================================
# Fake control API client
# ============================================================================


class FakeClient:
    """Drop-in for FirecrackerClient. Records calls, replays scripted failures.

    ``failures`` maps "<VERB> <path>" to a list of exceptions raised on
    successive calls (one per call, then success). ``responses`` maps a GET
    path to the model returned.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any] | None]] = []
        self.failures: dict[str, list[BaseException]] = {}
        self.responses: dict[str, FirecrackerModel] = {}
        self.describe_errors: list[BaseException] = []
        self.describe_calls = 0
        self.closed = False
        self.on_call: Callable[[str, str], None] | None = None

    def fail(self, key: str, *errors: BaseException) -> None:
        self.failures.setdefault(key, []).extend(errors)

    def _record(self, verb: str, path: str, body: FirecrackerModel | None) -> None:
        self.calls.append((verb, path, body.encode() if body is not None else None))
        if self.on_call is not None:
            self.on_call(verb, path)
        pending = self.failures.get(f"{verb} {path}")
        if pending:
            raise pending.pop(0)

    async def put(self, path: str, body: FirecrackerModel) -> None:
        self._record("PUT", path, body)

    async def patch(self, path: str, body: FirecrackerModel) -> None:
        self._record("PATCH", path, body)

    async def get(self, path: str, response_model: type[FirecrackerModel]) -> FirecrackerModel:
        self._record("GET", path, None)
        return self.responses[path]

    async def describe_instance(self) -> InstanceInfo:
        self.describe_calls += 1
        if self.describe_errors:
            raise self.describe_errors.pop(0)
        return InstanceInfo(id="fake", state="Running", vmm_version="1.7.0")

    async def close(self) -> None:
        self.closed = True

    @property
    def paths(self) -> list[str]:
        """Paths of recorded calls, in order."""
        return [path for _verb, path, _body in self.calls]

    def bodies(self, path: str) -> list[dict[str, Any] | None]:
        return [body for _verb, p, body in self.calls if p == path]


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


# ============================================================================
# Configuration fixtures
# ============================================================================


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with millisecond-scale polling and retry delays."""
    return Settings(
        stop_timeout=0.2,
        poll_interval=0.01,
        retry_initial_delay=0.001,
        retry_max_delay=0.005,
        retry_jitter_factor=0.0,
    )


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_delay=0.001, max_delay=0.005, jitter_factor=0.0)


@pytest.fixture
def vm_config() -> VmConfig:
    """Two drives, one network interface and a balloon with statistics."""
    return VmConfig(
        name="test-vm",
        socket_path="/tmp/firecracker-test.socket",
        machine=MachineConfiguration(vcpu_count=2, mem_size_mib=256),
        boot_source=BootSource.kernel("/images/vmlinux", boot_args="console=ttyS0"),
        drives=(
            Drive.root_drive("rootfs", "/images/rootfs.ext4"),
            Drive.data_drive("data", "/images/data.ext4"),
        ),
        network_interfaces=(
            NetworkInterface(iface_id="eth0", host_dev_name="tap0", guest_mac="AA:FC:00:00:00:01"),
        ),
        balloon=Balloon.with_statistics(64, 1),
    )
