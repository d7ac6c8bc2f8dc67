"""Tests for FirecrackerClient (control API over a Unix socket).

Uses httpx.MockTransport in place of the Unix-socket transport, so requests
go through the real httpx.AsyncClient stack (URL joining, JSON encoding,
response parsing). Only the socket itself is replaced.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from firecracker_control.client import FirecrackerClient
from firecracker_control.exceptions import (
    ApiDeserializationError,
    ApiHttpError,
    ClientIOError,
    ClientSerializationError,
    ClientTimeoutError,
    ClientUnknownError,
    InvalidPathError,
)
from firecracker_control.models import InstanceInfo, MachineConfiguration

SOCKET = "/tmp/firecracker-test.socket"

# ============================================================================
# Test Helpers
# ============================================================================


def _make_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[FirecrackerClient, list[httpx.Request]]:
    """Client whose transport records requests and answers with ``handler``."""
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return FirecrackerClient(SOCKET, transport=httpx.MockTransport(_record)), seen


def _no_content(_request: httpx.Request) -> httpx.Response:
    return httpx.Response(204)


# ============================================================================
# Init / lifecycle
# ============================================================================


class TestFirecrackerClientInit:
    def test_slots_defined(self) -> None:
        assert hasattr(FirecrackerClient, "__slots__")
        assert "_client" in FirecrackerClient.__slots__

    @pytest.mark.parametrize("path", ["", "   "])
    def test_empty_socket_path_rejected(self, path: str) -> None:
        with pytest.raises(InvalidPathError):
            FirecrackerClient(path)

    async def test_connection_is_lazy(self) -> None:
        client, _seen = _make_client(_no_content)
        assert client.is_open is False

        await client.put("/machine-config", MachineConfiguration(vcpu_count=1, mem_size_mib=128))
        assert client.is_open is True

        await client.close()
        assert client.is_open is False

    async def test_close_is_idempotent(self) -> None:
        client, _seen = _make_client(_no_content)
        await client.close()
        await client.close()
        assert client.is_open is False

    async def test_context_manager_closes(self) -> None:
        client, _seen = _make_client(_no_content)
        async with client:
            await client.put("/machine-config", MachineConfiguration(vcpu_count=1, mem_size_mib=128))
        assert client.is_open is False


# ============================================================================
# Requests
# ============================================================================


class TestFirecrackerClientRequests:
    async def test_put_sends_json_body(self) -> None:
        client, seen = _make_client(_no_content)

        await client.put("/machine-config", MachineConfiguration(vcpu_count=2, mem_size_mib=1024, smt=True))
        await client.close()

        assert len(seen) == 1
        request = seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/machine-config"
        assert json.loads(request.content) == {"vcpu_count": 2, "mem_size_mib": 1024, "smt": True}
        assert request.headers["accept"] == "application/json"

    async def test_patch_uses_patch_verb(self) -> None:
        client, seen = _make_client(_no_content)

        await client.patch("/machine-config", MachineConfiguration(vcpu_count=1, mem_size_mib=128))
        await client.close()

        assert seen[0].method == "PATCH"

    async def test_get_ignores_unknown_fields(self) -> None:
        payload = {"id": "vm-1", "state": "Running", "vmm_version": "1.7.0", "app_name": "Firecracker", "extra": 1}
        client, seen = _make_client(lambda _r: httpx.Response(200, json=payload))

        info = await client.describe_instance()
        await client.close()

        assert info == InstanceInfo(id="vm-1", state="Running", vmm_version="1.7.0", app_name="Firecracker")
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/"

    async def test_get_invalid_body_is_serialization_error(self) -> None:
        client, _seen = _make_client(lambda _r: httpx.Response(200, content=b"not json"))

        with pytest.raises(ClientSerializationError) as exc_info:
            await client.describe_instance()
        await client.close()

        assert isinstance(exc_info.value.__cause__, ApiDeserializationError)
        assert exc_info.value.__cause__.body == "not json"


# ============================================================================
# Error mapping
# ============================================================================


class TestFirecrackerClientErrors:
    async def test_fault_message_extracted(self) -> None:
        client, _seen = _make_client(lambda _r: httpx.Response(400, json={"fault_message": "Invalid vcpu count"}))

        with pytest.raises(ApiHttpError) as exc_info:
            await client.put("/machine-config", MachineConfiguration(vcpu_count=1, mem_size_mib=128))
        await client.close()

        error = exc_info.value
        assert error.status_code == 400
        assert error.operation == "PUT /machine-config"
        assert error.body == "Invalid vcpu count"

    async def test_non_json_error_body_kept_verbatim(self) -> None:
        client, _seen = _make_client(lambda _r: httpx.Response(500, content=b"internal failure"))

        with pytest.raises(ApiHttpError) as exc_info:
            await client.describe_instance()
        await client.close()

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "internal failure"

    async def test_empty_error_body(self) -> None:
        client, _seen = _make_client(lambda _r: httpx.Response(404))

        with pytest.raises(ApiHttpError) as exc_info:
            await client.describe_instance()
        await client.close()

        assert exc_info.value.body is None

    @pytest.mark.parametrize(
        ("raised", "expected"),
        [
            (httpx.ConnectError("connection refused"), ClientIOError),
            (httpx.ReadError("connection reset"), ClientIOError),
            (FileNotFoundError("no such socket"), ClientIOError),
            (httpx.ReadTimeout("timed out"), ClientTimeoutError),
            (httpx.ConnectTimeout("timed out"), ClientTimeoutError),
            (RuntimeError("boom"), ClientUnknownError),
        ],
    )
    async def test_transport_failures_normalized(self, raised: Exception, expected: type[Exception]) -> None:
        def _raise(_request: httpx.Request) -> httpx.Response:
            raise raised

        client, _seen = _make_client(_raise)

        with pytest.raises(expected) as exc_info:
            await client.describe_instance()
        await client.close()

        assert exc_info.value.__cause__ is raised
        assert exc_info.value.socket_path == SOCKET
