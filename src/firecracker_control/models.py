"""Wire models for the Firecracker control API.

Field names match the hypervisor's JSON schema exactly. Models are frozen and
validated at construction; encode() omits default-valued fields and decoding
ignores unknown response fields.
"""

from __future__ import annotations

import re
import time
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator, model_validator

from firecracker_control import constants
from firecracker_control.exceptions import ApiDeserializationError, ApiSerializationError

_MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")
_PERCENT = 100.0


def _not_blank(value: str, name: str) -> str:
    if not value.strip():
        raise ValueError(f"{name} cannot be blank")
    return value


class FirecrackerModel(BaseModel):
    """Base for all request and response bodies."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    def encode(self, operation: str = "") -> dict[str, Any]:
        """Serialize to the JSON-ready dict sent on the wire.

        Raises:
            ApiSerializationError: The model could not be serialized
        """
        try:
            return self.model_dump(mode="json", exclude_defaults=True)
        except (ValueError, TypeError) as e:
            raise ApiSerializationError(operation or type(self).__name__, e) from e

    @classmethod
    def decode(cls, data: bytes | str, operation: str = "") -> Self:
        """Parse a response body, ignoring unknown fields.

        Raises:
            ApiDeserializationError: The body is not valid JSON for this model
        """
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            body = data.decode(errors="replace") if isinstance(data, bytes) else data
            raise ApiDeserializationError(operation or cls.__name__, body, e) from e


# ============================================================================
# Machine Configuration
# ============================================================================


class CpuTemplate(str, Enum):
    """CPU templates understood by Firecracker."""

    C3 = "C3"
    T2 = "T2"
    T2S = "T2S"
    T2CL = "T2CL"
    T2A = "T2A"
    V1N1 = "V1N1"
    NONE = "None"


class HugePages(str, Enum):
    """Guest memory backing page size."""

    NONE = "None"
    M2 = "2M"


class MachineConfiguration(FirecrackerModel):
    """vCPU and memory sizing (PUT /machine-config)."""

    vcpu_count: int = Field(ge=constants.MIN_VCPU_COUNT, le=constants.MAX_VCPU_COUNT)
    mem_size_mib: int = Field(gt=0)
    smt: bool = False
    track_dirty_pages: bool = False
    cpu_template: CpuTemplate = CpuTemplate.NONE
    huge_pages: HugePages = HugePages.NONE

    @model_validator(mode="after")
    def _check_pairing(self) -> Self:
        if self.smt and self.vcpu_count > 1 and self.vcpu_count % 2 != 0:
            raise ValueError(f"When SMT is enabled, vCPU count must be 1 or an even number, got: {self.vcpu_count}")
        if self.huge_pages is HugePages.M2 and self.mem_size_mib % 2 != 0:
            raise ValueError(
                f"When using 2M huge pages, memory size must be a multiple of 2, got: {self.mem_size_mib} MiB"
            )
        return self


# ============================================================================
# Boot Source
# ============================================================================


class BootSource(FirecrackerModel):
    """Kernel, initrd and command line (PUT /boot-source)."""

    kernel_image_path: str
    boot_args: str | None = None
    initrd_path: str | None = None

    @field_validator("kernel_image_path")
    @classmethod
    def _kernel_not_blank(cls, v: str) -> str:
        return _not_blank(v, "Kernel image path")

    @classmethod
    def kernel(cls, kernel_path: str, boot_args: str | None = None) -> BootSource:
        return cls(kernel_image_path=kernel_path, boot_args=boot_args)

    @classmethod
    def kernel_with_initrd(cls, kernel_path: str, initrd_path: str, boot_args: str | None = None) -> BootSource:
        return cls(kernel_image_path=kernel_path, initrd_path=initrd_path, boot_args=boot_args)


# ============================================================================
# Rate Limiting
# ============================================================================


class TokenBucket(FirecrackerModel):
    """Token bucket used by drive and network rate limiters."""

    size: int = Field(gt=0)
    one_time_burst: int | None = Field(default=None, ge=0)
    refill_time: int = Field(gt=0, description="Refill time in milliseconds")

    @classmethod
    def create(cls, size: int, one_time_burst: int | None = None, refill_time_ms: int = 100) -> TokenBucket:
        burst = size if one_time_burst is None else one_time_burst
        return cls(size=size, one_time_burst=burst, refill_time=refill_time_ms)


class RateLimiter(FirecrackerModel):
    """Bandwidth and/or operations limits."""

    bandwidth: TokenBucket | None = None
    ops: TokenBucket | None = None


# ============================================================================
# Drives
# ============================================================================


class CacheType(str, Enum):
    UNSAFE = "Unsafe"
    WRITEBACK = "Writeback"


class Drive(FirecrackerModel):
    """Block device (PUT /drives/{drive_id}).

    is_root_device has no default so it is always sent; Firecracker requires it.
    """

    drive_id: str
    path_on_host: str
    is_root_device: bool
    is_read_only: bool = False
    cache_type: CacheType = CacheType.UNSAFE
    rate_limiter: RateLimiter | None = None

    @field_validator("drive_id", "path_on_host")
    @classmethod
    def _fields_not_blank(cls, v: str, info: ValidationInfo) -> str:
        return _not_blank(v, info.field_name)

    @classmethod
    def root_drive(cls, drive_id: str, path_on_host: str, *, read_only: bool = False) -> Drive:
        return cls(drive_id=drive_id, path_on_host=path_on_host, is_root_device=True, is_read_only=read_only)

    @classmethod
    def data_drive(
        cls,
        drive_id: str,
        path_on_host: str,
        *,
        read_only: bool = False,
        cache_type: CacheType = CacheType.UNSAFE,
    ) -> Drive:
        return cls(
            drive_id=drive_id,
            path_on_host=path_on_host,
            is_root_device=False,
            is_read_only=read_only,
            cache_type=cache_type,
        )


# ============================================================================
# Network Interfaces
# ============================================================================


class NetworkInterface(FirecrackerModel):
    """Guest network interface backed by a host TAP device."""

    iface_id: str
    host_dev_name: str
    guest_mac: str | None = None
    rx_rate_limiter: RateLimiter | None = None
    tx_rate_limiter: RateLimiter | None = None

    @field_validator("iface_id", "host_dev_name")
    @classmethod
    def _fields_not_blank(cls, v: str, info: ValidationInfo) -> str:
        return _not_blank(v, info.field_name)

    @field_validator("guest_mac")
    @classmethod
    def _valid_mac(cls, v: str | None) -> str | None:
        if v is not None and not _MAC_PATTERN.match(v):
            raise ValueError(f"Invalid MAC address format: {v}")
        return v


# ============================================================================
# Logger / Metrics
# ============================================================================


class LogLevel(str, Enum):
    ERROR = "Error"
    WARN = "Warn"
    INFO = "Info"
    DEBUG = "Debug"
    TRACE = "Trace"


class Logger(FirecrackerModel):
    """Hypervisor log sink (PUT /logger)."""

    log_path: str
    level: LogLevel = LogLevel.WARN
    show_level: bool = False
    show_log_origin: bool = False

    @field_validator("log_path")
    @classmethod
    def _path_not_blank(cls, v: str) -> str:
        return _not_blank(v, "Log path")

    @classmethod
    def debug(cls, log_path: str) -> Logger:
        return cls(log_path=log_path, level=LogLevel.DEBUG, show_level=True, show_log_origin=True)

    @classmethod
    def production(cls, log_path: str) -> Logger:
        return cls(log_path=log_path, level=LogLevel.ERROR)


class Metrics(FirecrackerModel):
    """Hypervisor metrics sink (PUT /metrics)."""

    metrics_path: str

    @field_validator("metrics_path")
    @classmethod
    def _path_not_blank(cls, v: str) -> str:
        return _not_blank(v, "Metrics path")

    @classmethod
    def for_vm(cls, vm_id: str, base_dir: str = "/tmp") -> Metrics:
        return cls(metrics_path=f"{base_dir}/firecracker-metrics-{_not_blank(vm_id, 'VM ID')}.json")


# ============================================================================
# Balloon
# ============================================================================


class Balloon(FirecrackerModel):
    """Memory balloon device (PUT /balloon)."""

    amount_mib: int = Field(ge=0)
    deflate_on_oom: bool = False
    stats_polling_interval_s: int = Field(default=0, ge=0)

    @classmethod
    def with_statistics(cls, amount_mib: int, polling_interval_s: int, *, deflate_on_oom: bool = False) -> Balloon:
        if polling_interval_s <= 0:
            raise ValueError(f"Statistics polling interval must be positive, got: {polling_interval_s} seconds")
        return cls(amount_mib=amount_mib, deflate_on_oom=deflate_on_oom, stats_polling_interval_s=polling_interval_s)


class BalloonUpdate(FirecrackerModel):
    """Runtime balloon target (PATCH /balloon)."""

    amount_mib: int = Field(ge=0)


class BalloonStatistics(FirecrackerModel):
    """Balloon statistics (GET /balloon/statistics)."""

    target_pages: int
    actual_pages: int
    target_mib: int
    actual_mib: int
    swap_in: int | None = None
    swap_out: int | None = None
    major_faults: int | None = None
    minor_faults: int | None = None
    free_memory: int | None = None
    total_memory: int | None = None
    available_memory: int | None = None
    disk_caches: int | None = None
    hugetlb_allocations: int | None = None
    hugetlb_failures: int | None = None

    @property
    def efficiency(self) -> float:
        """Percentage of the target balloon size actually reached."""
        if self.target_pages > 0:
            return self.actual_pages / self.target_pages * _PERCENT
        return _PERCENT

    @property
    def is_at_target(self) -> bool:
        return self.actual_pages == self.target_pages

    @property
    def memory_pressure(self) -> float | None:
        """Percentage of guest memory in use, None when the guest did not report it."""
        if self.total_memory and self.available_memory is not None:
            return (self.total_memory - self.available_memory) / self.total_memory * _PERCENT
        return None


# ============================================================================
# VSock
# ============================================================================


class VSock(FirecrackerModel):
    """virtio-vsock device (PUT /vsock)."""

    guest_cid: int = Field(ge=constants.MIN_GUEST_CID)
    uds_path: str
    vsock_id: str = "vsock"

    @field_validator("uds_path", "vsock_id")
    @classmethod
    def _fields_not_blank(cls, v: str, info: ValidationInfo) -> str:
        return _not_blank(v, info.field_name)


# ============================================================================
# Snapshots
# ============================================================================


class SnapshotType(str, Enum):
    FULL = "Full"
    DIFF = "Diff"


class SnapshotCreateParams(FirecrackerModel):
    """PUT /snapshot/create body."""

    snapshot_type: SnapshotType = SnapshotType.FULL
    snapshot_path: str
    mem_file_path: str

    @field_validator("snapshot_path", "mem_file_path")
    @classmethod
    def _paths_not_blank(cls, v: str, info: ValidationInfo) -> str:
        return _not_blank(v, info.field_name)

    @classmethod
    def full(cls, snapshot_path: str, mem_file_path: str) -> SnapshotCreateParams:
        return cls(snapshot_type=SnapshotType.FULL, snapshot_path=snapshot_path, mem_file_path=mem_file_path)

    @classmethod
    def diff(cls, snapshot_path: str, mem_file_path: str) -> SnapshotCreateParams:
        return cls(snapshot_type=SnapshotType.DIFF, snapshot_path=snapshot_path, mem_file_path=mem_file_path)

    @classmethod
    def for_vm(cls, vm_id: str, base_dir: str = "/tmp", snapshot_type: SnapshotType = SnapshotType.FULL) -> Self:
        _not_blank(vm_id, "VM ID")
        stamp = int(time.time() * 1000)
        return cls(
            snapshot_type=snapshot_type,
            snapshot_path=f"{base_dir}/snapshot-{vm_id}-{stamp}.json",
            mem_file_path=f"{base_dir}/memory-{vm_id}-{stamp}.mem",
        )


class SnapshotLoadParams(FirecrackerModel):
    """PUT /snapshot/load body."""

    snapshot_path: str
    mem_file_path: str
    enable_diff_snapshots: bool = False
    resume_vm: bool = False

    @field_validator("snapshot_path", "mem_file_path")
    @classmethod
    def _paths_not_blank(cls, v: str, info: ValidationInfo) -> str:
        return _not_blank(v, info.field_name)


# ============================================================================
# Actions / Instance
# ============================================================================


class ActionType(str, Enum):
    """Lifecycle actions accepted by PUT /actions."""

    INSTANCE_START = "InstanceStart"
    SEND_CTRL_ALT_DEL = "SendCtrlAltDel"
    INSTANCE_STOP = "InstanceStop"
    PAUSE = "Pause"
    RESUME = "Resume"


class InstanceAction(FirecrackerModel):
    """PUT /actions body."""

    action_type: ActionType


class InstanceInfo(FirecrackerModel):
    """GET / response."""

    id: str = ""
    state: str = ""
    vmm_version: str = ""
    app_name: str = ""
