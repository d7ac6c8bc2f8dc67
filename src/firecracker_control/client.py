"""HTTP client for the Firecracker control API over a Unix domain socket.

Every request goes through _request(), which normalizes failures:
- httpx timeouts          → ClientTimeoutError
- httpx transport / OSError → ClientIOError
- body (de)serialization  → ClientSerializationError
- anything else           → ClientUnknownError
- non-2xx responses       → ApiHttpError (with Firecracker's fault_message)

No httpx exception escapes this module.

Usage:
    async with FirecrackerClient("/tmp/firecracker.socket") as client:
        await client.put("/machine-config", MachineConfiguration(vcpu_count=2, mem_size_mib=1024))
        info = await client.describe_instance()
"""

from __future__ import annotations

import json
import types
from pathlib import Path
from typing import TypeVar

import httpx

from firecracker_control import constants
from firecracker_control._logging import get_logger
from firecracker_control.exceptions import (
    ApiDeserializationError,
    ApiHttpError,
    ApiSerializationError,
    ClientIOError,
    ClientSerializationError,
    ClientTimeoutError,
    ClientUnknownError,
    InvalidPathError,
)
from firecracker_control.models import FirecrackerModel, InstanceInfo

logger = get_logger(__name__)

M = TypeVar("M", bound=FirecrackerModel)


class FirecrackerClient:
    """Async client for one Firecracker control socket.

    The underlying httpx.AsyncClient is created lazily on first request and
    must be released with close() (or by using the client as an async
    context manager). Not safe for concurrent use by multiple VM controllers;
    each VirtualMachine owns its own client.

    Attributes:
        socket_path: Filesystem path of the control socket
    """

    __slots__ = ("_client", "_connect_timeout", "_request_timeout", "_socket_path", "_transport")

    def __init__(
        self,
        socket_path: str | Path,
        *,
        request_timeout: float = constants.REQUEST_TIMEOUT_SECONDS,
        connect_timeout: float = constants.CONNECT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client without connecting.

        Args:
            socket_path: Path to the Firecracker API socket.
            request_timeout: Total per-request timeout in seconds.
            connect_timeout: Socket connect timeout in seconds.
            transport: Override the Unix-socket transport (used by tests).

        Raises:
            InvalidPathError: socket_path is empty.
        """
        if not str(socket_path).strip():
            raise InvalidPathError(str(socket_path), "Socket path cannot be empty")
        self._socket_path = str(socket_path)
        self._request_timeout = request_timeout
        self._connect_timeout = connect_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def socket_path(self) -> str:
        return self._socket_path

    @property
    def is_open(self) -> bool:
        """Whether an underlying connection pool is currently held."""
        return self._client is not None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            transport = self._transport or httpx.AsyncHTTPTransport(uds=self._socket_path)
            self._client = httpx.AsyncClient(
                transport=transport,
                base_url=constants.BASE_URL,
                timeout=httpx.Timeout(self._request_timeout, connect=self._connect_timeout),
                headers={"Accept": "application/json"},
            )
            logger.debug("Opened control socket client", extra={"socket_path": self._socket_path})
        return self._client

    async def close(self) -> None:
        """Release the connection pool. Safe to call multiple times."""
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
            logger.debug("Closed control socket client", extra={"socket_path": self._socket_path})

    async def __aenter__(self) -> FirecrackerClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Public verbs
    # -------------------------------------------------------------------------

    async def get(self, path: str, response_model: type[M]) -> M:
        """GET ``path`` and decode the body as ``response_model``."""
        operation = f"GET {path}"
        response = await self._request("GET", path)
        try:
            return response_model.decode(response.content, operation)
        except ApiDeserializationError as e:
            raise ClientSerializationError(self._socket_path, e) from e

    async def put(self, path: str, body: FirecrackerModel) -> None:
        """PUT ``body`` to ``path``."""
        await self._request("PUT", path, body)

    async def patch(self, path: str, body: FirecrackerModel) -> None:
        """PATCH ``path`` with ``body``."""
        await self._request("PATCH", path, body)

    async def describe_instance(self) -> InstanceInfo:
        """GET / (instance id, state and VMM version)."""
        return await self.get(constants.PATH_INSTANCE, InstanceInfo)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _request(self, method: str, path: str, body: FirecrackerModel | None = None) -> httpx.Response:
        operation = f"{method} {path}"
        payload = None
        if body is not None:
            try:
                payload = body.encode(operation)
            except ApiSerializationError as e:
                raise ClientSerializationError(self._socket_path, e) from e

        logger.debug("Control API request: %s body=%s", operation, payload)
        client = self._get_client()
        try:
            response = await client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            raise ClientTimeoutError(self._socket_path, e) from e
        except (httpx.TransportError, OSError) as e:
            raise ClientIOError(self._socket_path, e) from e
        except Exception as e:  # noqa: BLE001 - normalize everything else
            raise ClientUnknownError(self._socket_path, e) from e

        logger.debug("Control API response: %s -> %d", operation, response.status_code)
        if response.status_code >= constants.HTTP_ERROR_MIN:
            raise ApiHttpError(response.status_code, operation, _fault_message(response))
        return response


def _fault_message(response: httpx.Response) -> str | None:
    """Extract Firecracker's fault_message, falling back to the raw body."""
    text = response.text
    if not text:
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if isinstance(data, dict) and isinstance(data.get("fault_message"), str):
        return data["fault_message"]
    return text
