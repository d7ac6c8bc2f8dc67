"""firecracker-control: async control-plane client for Firecracker microVMs.

Drives a Firecracker process over its Unix-socket HTTP control API: configure
a VM, boot it, pause/resume, snapshot/restore, resize its memory balloon and
shut it down, with lifecycle state tracking, retry with exponential backoff,
and a closed exception taxonomy.

Quick Start:
    ```python
    from firecracker_control import Drive, create_vm, human_message

    vm = create_vm(
        "web-1",
        "/tmp/firecracker-web-1.socket",
        kernel_image_path="/images/vmlinux",
        boot_args="console=ttyS0 reboot=k panic=1",
        vcpu_count=2,
        mem_size_mib=1024,
        drives=[Drive.root_drive("rootfs", "/images/rootfs.ext4")],
    )
    async with vm:
        result = await vm.start()
        if not result.ok:
            print(human_message(result.error))
        await vm.stop()
    ```

Snapshots:
    ```python
    from firecracker_control import SnapshotStore

    store = SnapshotStore("/var/lib/snapshots", vm.name)
    await vm.pause()
    await vm.create_snapshot(store.create_params())
    await store.prune()
    ```

Requirements:
    - A Firecracker process listening on its API socket (this library does
      not spawn or jail it)
    - Python 3.12+
"""

from firecracker_control._logging import configure_logging
from firecracker_control.client import FirecrackerClient
from firecracker_control.config import VmConfig
from firecracker_control.error_handling import human_message, is_retryable, is_transient, recovery_suggestions
from firecracker_control.exceptions import (
    ApiConnectionFailedError,
    ApiDeserializationError,
    ApiError,
    ApiHttpError,
    ApiSerializationError,
    ClientError,
    ClientIOError,
    ClientSerializationError,
    ClientTimeoutError,
    ClientUnknownError,
    FileSystemError,
    FirecrackerError,
    InputValidationError,
    InvalidFormatError,
    InvalidPathError,
    InvalidRangeError,
    InvalidSnapshotError,
    MissingRequiredFieldError,
    ResourceError,
    ResourceLimitExceededError,
    ResourceUnavailableError,
    SnapshotCreationFailedError,
    SnapshotError,
    SnapshotRestorationFailedError,
    VmError,
    VmInvalidConfigurationError,
    VmInvalidStateTransitionError,
    VmOperationFailedError,
    VmOperationTimeoutError,
    VmResourceAllocationFailedError,
)
from firecracker_control.factory import connect_to, create_vm
from firecracker_control.models import (
    Balloon,
    BalloonStatistics,
    BalloonUpdate,
    BootSource,
    CacheType,
    CpuTemplate,
    Drive,
    HugePages,
    InstanceInfo,
    Logger,
    LogLevel,
    MachineConfiguration,
    Metrics,
    NetworkInterface,
    RateLimiter,
    SnapshotCreateParams,
    SnapshotLoadParams,
    SnapshotType,
    TokenBucket,
    VSock,
)
from firecracker_control.retry import (
    AGGRESSIVE_RETRY,
    CONSERVATIVE_RETRY,
    DEFAULT_RETRY,
    NO_RETRY,
    DefaultRetryPolicy,
    RetryConfig,
    RetryPolicy,
    with_retry,
)
from firecracker_control.settings import Settings
from firecracker_control.snapshot_store import RetentionPolicy, SnapshotInfo, SnapshotStore
from firecracker_control.virtual_machine import VirtualMachine
from firecracker_control.vm_types import OperationResult, VmInfo, VmOperation, VmState

__all__ = [
    "AGGRESSIVE_RETRY",
    "CONSERVATIVE_RETRY",
    "DEFAULT_RETRY",
    "NO_RETRY",
    "ApiConnectionFailedError",
    "ApiDeserializationError",
    "ApiError",
    "ApiHttpError",
    "ApiSerializationError",
    "Balloon",
    "BalloonStatistics",
    "BalloonUpdate",
    "BootSource",
    "CacheType",
    "ClientError",
    "ClientIOError",
    "ClientSerializationError",
    "ClientTimeoutError",
    "ClientUnknownError",
    "CpuTemplate",
    "DefaultRetryPolicy",
    "Drive",
    "FileSystemError",
    "FirecrackerClient",
    "FirecrackerError",
    "HugePages",
    "InputValidationError",
    "InstanceInfo",
    "InvalidFormatError",
    "InvalidPathError",
    "InvalidRangeError",
    "InvalidSnapshotError",
    "LogLevel",
    "Logger",
    "MachineConfiguration",
    "Metrics",
    "MissingRequiredFieldError",
    "NetworkInterface",
    "OperationResult",
    "RateLimiter",
    "ResourceError",
    "ResourceLimitExceededError",
    "ResourceUnavailableError",
    "RetentionPolicy",
    "RetryConfig",
    "RetryPolicy",
    "Settings",
    "SnapshotCreateParams",
    "SnapshotCreationFailedError",
    "SnapshotError",
    "SnapshotInfo",
    "SnapshotLoadParams",
    "SnapshotRestorationFailedError",
    "SnapshotStore",
    "SnapshotType",
    "TokenBucket",
    "VSock",
    "VirtualMachine",
    "VmConfig",
    "VmError",
    "VmInfo",
    "VmInvalidConfigurationError",
    "VmInvalidStateTransitionError",
    "VmOperation",
    "VmOperationFailedError",
    "VmOperationTimeoutError",
    "VmResourceAllocationFailedError",
    "VmState",
    "configure_logging",
    "connect_to",
    "create_vm",
    "human_message",
    "is_retryable",
    "is_transient",
    "recovery_suggestions",
    "with_retry",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("firecracker-control")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
