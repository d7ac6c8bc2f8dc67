"""Entry points: build a validated VirtualMachine or adopt a running one.

create_vm() is the validated factory for new VMs. Pydantic validation
failures never escape it: they are translated into the input validation
taxonomy (MissingRequiredFieldError, InvalidRangeError, InvalidFormatError)
or VmInvalidConfigurationError for cross-field rules.

connect_to() attaches a controller to a Firecracker process that is already
listening on its control socket.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError
from pydantic_core import ErrorDetails

from firecracker_control import constants
from firecracker_control._logging import get_logger
from firecracker_control.client import FirecrackerClient
from firecracker_control.config import VmConfig
from firecracker_control.exceptions import (
    ApiConnectionFailedError,
    ClientError,
    FirecrackerError,
    InvalidFormatError,
    InvalidRangeError,
    MissingRequiredFieldError,
    VmInvalidConfigurationError,
)
from firecracker_control.models import (
    Balloon,
    BootSource,
    Drive,
    Logger,
    MachineConfiguration,
    Metrics,
    NetworkInterface,
    VSock,
)
from firecracker_control.retry import RetryConfig
from firecracker_control.settings import Settings
from firecracker_control.virtual_machine import VirtualMachine
from firecracker_control.vm_types import VmState

logger = get_logger(__name__)

_RANGE_SYMBOLS = {"gt": ">", "ge": ">=", "lt": "<", "le": "<="}

_MAC_FORMAT = "XX:XX:XX:XX:XX:XX (hex octets)"

# Firecracker's GET / "state" field -> controller state for adopted VMs
_REMOTE_STATES = {
    "Running": VmState.RUNNING,
    "Paused": VmState.PAUSED,
    "Not started": VmState.NOT_STARTED,
}


def create_vm(
    name: str,
    socket_path: str | None = None,
    *,
    kernel_image_path: str,
    boot_args: str | None = None,
    initrd_path: str | None = None,
    vcpu_count: int = constants.DEFAULT_VCPU_COUNT,
    mem_size_mib: int = constants.DEFAULT_MEMORY_MIB,
    smt: bool = False,
    track_dirty_pages: bool = False,
    drives: Iterable[Drive | Mapping[str, Any]] = (),
    network_interfaces: Iterable[NetworkInterface | Mapping[str, Any]] = (),
    logger_config: Logger | Mapping[str, Any] | None = None,
    metrics: Metrics | Mapping[str, Any] | None = None,
    balloon: Balloon | Mapping[str, Any] | None = None,
    vsock: VSock | Mapping[str, Any] | None = None,
    client: FirecrackerClient | None = None,
    retry_config: RetryConfig | None = None,
    settings: Settings | None = None,
) -> VirtualMachine:
    """Validate the configuration and build a NOT_STARTED VirtualMachine.

    Devices may be given as models or as plain mappings using the wire field
    names. No connection is made. Without ``socket_path`` the socket is
    ``<socket_dir>/firecracker-<name>.socket`` from Settings.

    Raises:
        MissingRequiredFieldError: A required field is missing or blank
        InvalidRangeError: A numeric field is out of range (e.g. vcpu_count 0)
        InvalidFormatError: A field has the wrong format (e.g. guest_mac)
        VmInvalidConfigurationError: Any other configuration rule is violated
    """
    settings = settings or Settings()
    if socket_path is None:
        socket_path = str(settings.socket_dir / f"firecracker-{name}.socket")
    try:
        config = VmConfig(
            name=name,
            socket_path=socket_path,
            machine=MachineConfiguration(
                vcpu_count=vcpu_count,
                mem_size_mib=mem_size_mib,
                smt=smt,
                track_dirty_pages=track_dirty_pages,
            ),
            boot_source=BootSource(
                kernel_image_path=kernel_image_path,
                boot_args=boot_args,
                initrd_path=initrd_path,
            ),
            drives=tuple(drives),
            network_interfaces=tuple(network_interfaces),
            logger=logger_config,
            metrics=metrics,
            balloon=balloon,
            vsock=vsock,
        )
    except ValidationError as e:
        raise validation_error_to_taxonomy(e, name) from e

    logger.debug("Created VM configuration", extra={"vm_name": name, "socket_path": socket_path})
    return VirtualMachine(config, client=client, retry_config=retry_config, settings=settings)


def validation_error_to_taxonomy(error: ValidationError, vm_name: str) -> FirecrackerError:
    """Translate the first pydantic error into the library's exception taxonomy."""
    details = error.errors()
    if not details:
        return VmInvalidConfigurationError(error.title, str(error), vm_name)
    detail = details[0]
    field = ".".join(str(part) for part in detail["loc"]) or error.title
    kind = detail["type"]
    ctx = detail.get("ctx") or {}

    if kind == "missing" or kind == "string_too_short" or _is_blank_error(detail):
        return MissingRequiredFieldError(field, error.title)
    if kind in ("greater_than", "greater_than_equal", "less_than", "less_than_equal"):
        bounds = ", ".join(f"{_RANGE_SYMBOLS[k]} {v}" for k, v in ctx.items() if k in _RANGE_SYMBOLS)
        return InvalidRangeError(field, detail["input"], bounds)
    if kind == "string_pattern_mismatch":
        return InvalidFormatError(field, str(detail["input"]), str(ctx.get("pattern", "")))
    if field.endswith("guest_mac"):
        return InvalidFormatError(field, str(detail["input"]), _MAC_FORMAT)
    return VmInvalidConfigurationError(field, detail["msg"], vm_name)


def _is_blank_error(detail: ErrorDetails) -> bool:
    return detail["type"] == "value_error" and detail["msg"].endswith("cannot be blank")


async def connect_to(
    socket_path: str,
    *,
    name: str | None = None,
    client: FirecrackerClient | None = None,
    settings: Settings | None = None,
) -> VirtualMachine:
    """Attach a controller to an already-running Firecracker process.

    Calls GET / to confirm the endpoint answers. The returned controller
    carries a placeholder configuration (the hypervisor does not report its
    boot configuration), so only runtime operations are meaningful on it.

    Raises:
        ApiConnectionFailedError: The control socket could not be reached
        ApiHttpError: The endpoint answered with an error status
    """
    settings = settings or Settings()
    client = client or FirecrackerClient(
        socket_path,
        request_timeout=settings.request_timeout,
        connect_timeout=settings.connect_timeout,
    )
    try:
        info = await client.describe_instance()
    except ClientError as e:
        await client.close()
        raise ApiConnectionFailedError(socket_path, e) from e
    except FirecrackerError:
        await client.close()
        raise

    config = VmConfig(
        name=name or info.id or "firecracker",
        socket_path=socket_path,
        machine=MachineConfiguration(
            vcpu_count=constants.DEFAULT_VCPU_COUNT,
            mem_size_mib=constants.DEFAULT_MEMORY_MIB,
        ),
        boot_source=BootSource(kernel_image_path="unknown"),
    )
    state = _REMOTE_STATES.get(info.state, VmState.RUNNING)
    logger.info(
        "Connected to Firecracker",
        extra={"vm_name": config.name, "socket_path": socket_path, "vmm_version": info.vmm_version},
    )
    return VirtualMachine(config, client=client, settings=settings, initial_state=state)
