"""VM configuration for firecracker-control.

VmConfig is the immutable configuration snapshot a VirtualMachine is built
from. Changing a VM's configuration means creating a new VirtualMachine.

Example:
    ```python
    from firecracker_control import BootSource, Drive, MachineConfiguration, VmConfig

    config = VmConfig(
        name="web-1",
        socket_path="/tmp/firecracker-web-1.socket",
        machine=MachineConfiguration(vcpu_count=2, mem_size_mib=1024),
        boot_source=BootSource.kernel("/images/vmlinux", boot_args="console=ttyS0"),
        drives=[Drive.root_drive("rootfs", "/images/rootfs.ext4")],
    )
    ```
"""

from __future__ import annotations

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

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


class VmConfig(BaseModel):
    """Full configuration of a single microVM.

    Attributes:
        name: Human-readable VM name used in errors and logs.
        socket_path: Path of the Firecracker API socket controlling this VM.
        machine: vCPU / memory sizing.
        boot_source: Kernel, initrd and boot arguments.
        drives: Block devices, configured in list order.
        network_interfaces: Network interfaces, configured in list order.
        logger: Optional hypervisor log sink.
        metrics: Optional hypervisor metrics sink.
        balloon: Optional memory balloon device.
        vsock: Optional virtio-vsock device.
    """

    model_config = ConfigDict(
        frozen=True,  # Immutable after creation
        extra="forbid",  # Reject unknown fields
    )

    name: str = Field(min_length=1, description="VM name")
    socket_path: str = Field(min_length=1, description="Firecracker API socket path")
    machine: MachineConfiguration
    boot_source: BootSource
    drives: tuple[Drive, ...] = ()
    network_interfaces: tuple[NetworkInterface, ...] = ()
    logger: Logger | None = None
    metrics: Metrics | None = None
    balloon: Balloon | None = None
    vsock: VSock | None = None

    @model_validator(mode="after")
    def _check_devices(self) -> Self:
        drive_ids = [d.drive_id for d in self.drives]
        if len(drive_ids) != len(set(drive_ids)):
            raise ValueError(f"drives: duplicate drive_id in {drive_ids}")
        roots = [d.drive_id for d in self.drives if d.is_root_device]
        if len(roots) > 1:
            raise ValueError(f"drives: at most one root device allowed, got {roots}")
        iface_ids = [n.iface_id for n in self.network_interfaces]
        if len(iface_ids) != len(set(iface_ids)):
            raise ValueError(f"network_interfaces: duplicate iface_id in {iface_ids}")
        return self
