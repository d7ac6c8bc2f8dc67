"""Tests for control API wire models (validation, encoding, decoding)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from firecracker_control.exceptions import ApiDeserializationError
from firecracker_control.models import (
    ActionType,
    Balloon,
    BalloonStatistics,
    BootSource,
    CacheType,
    Drive,
    HugePages,
    InstanceAction,
    InstanceInfo,
    Logger,
    LogLevel,
    MachineConfiguration,
    Metrics,
    NetworkInterface,
    RateLimiter,
    SnapshotCreateParams,
    SnapshotType,
    TokenBucket,
    VSock,
)

# ============================================================================
# MachineConfiguration
# ============================================================================


class TestMachineConfiguration:
    @pytest.mark.parametrize("vcpus", [0, 33, -1])
    def test_vcpu_range(self, vcpus: int) -> None:
        with pytest.raises(ValidationError):
            MachineConfiguration(vcpu_count=vcpus, mem_size_mib=128)

    def test_memory_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            MachineConfiguration(vcpu_count=1, mem_size_mib=0)

    def test_smt_requires_even_vcpus(self) -> None:
        with pytest.raises(ValidationError, match="SMT"):
            MachineConfiguration(vcpu_count=3, mem_size_mib=128, smt=True)
        assert MachineConfiguration(vcpu_count=1, mem_size_mib=128, smt=True).smt
        assert MachineConfiguration(vcpu_count=4, mem_size_mib=128, smt=True).smt

    def test_huge_pages_require_even_memory(self) -> None:
        with pytest.raises(ValidationError, match="huge pages"):
            MachineConfiguration(vcpu_count=1, mem_size_mib=129, huge_pages=HugePages.M2)

    def test_encode_omits_defaults(self) -> None:
        assert MachineConfiguration(vcpu_count=2, mem_size_mib=512).encode() == {"vcpu_count": 2, "mem_size_mib": 512}

    def test_encode_uses_wire_enum_values(self) -> None:
        body = MachineConfiguration(vcpu_count=2, mem_size_mib=512, huge_pages=HugePages.M2).encode()
        assert body["huge_pages"] == "2M"

    def test_frozen(self) -> None:
        config = MachineConfiguration(vcpu_count=2, mem_size_mib=512)
        with pytest.raises(ValidationError):
            config.vcpu_count = 4  # type: ignore[misc]


# ============================================================================
# Devices
# ============================================================================


class TestBootSource:
    def test_blank_kernel_rejected(self) -> None:
        with pytest.raises(ValidationError, match="cannot be blank"):
            BootSource(kernel_image_path="  ")

    def test_kernel_with_initrd(self) -> None:
        boot = BootSource.kernel_with_initrd("/vmlinux", "/initrd.img", boot_args="quiet")
        assert boot.encode() == {"kernel_image_path": "/vmlinux", "boot_args": "quiet", "initrd_path": "/initrd.img"}


class TestDrive:
    def test_root_drive_always_sends_root_flag(self) -> None:
        body = Drive.data_drive("data", "/images/data.ext4").encode()
        assert body["is_root_device"] is False

    def test_read_only_root(self) -> None:
        body = Drive.root_drive("rootfs", "/images/rootfs.ext4", read_only=True).encode()
        assert body == {
            "drive_id": "rootfs",
            "path_on_host": "/images/rootfs.ext4",
            "is_root_device": True,
            "is_read_only": True,
        }

    def test_rate_limited_drive(self) -> None:
        limiter = RateLimiter(bandwidth=TokenBucket.create(1024 * 1024, refill_time_ms=1000))
        drive = Drive.data_drive("data", "/d.ext4", cache_type=CacheType.WRITEBACK).model_copy(
            update={"rate_limiter": limiter}
        )

        body = drive.encode()

        assert body["cache_type"] == "Writeback"
        assert body["rate_limiter"] == {
            "bandwidth": {"size": 1048576, "one_time_burst": 1048576, "refill_time": 1000}
        }

    @pytest.mark.parametrize("field", ["drive_id", "path_on_host"])
    def test_blank_fields_rejected(self, field: str) -> None:
        kwargs = {"drive_id": "d", "path_on_host": "/p", "is_root_device": False, field: ""}
        with pytest.raises(ValidationError, match="cannot be blank"):
            Drive(**kwargs)


class TestNetworkInterface:
    @pytest.mark.parametrize("mac", ["AA:FC:00:00:00:01", "aa-fc-00-00-00-01"])
    def test_valid_mac(self, mac: str) -> None:
        assert NetworkInterface(iface_id="eth0", host_dev_name="tap0", guest_mac=mac).guest_mac == mac

    @pytest.mark.parametrize("mac", ["AA:FC:00:00:00", "GG:FC:00:00:00:01", "aafc00000001"])
    def test_invalid_mac(self, mac: str) -> None:
        with pytest.raises(ValidationError, match="MAC"):
            NetworkInterface(iface_id="eth0", host_dev_name="tap0", guest_mac=mac)


class TestLoggerMetrics:
    def test_debug_logger(self) -> None:
        logger = Logger.debug("/tmp/fc.log")
        assert logger.level is LogLevel.DEBUG
        assert logger.encode() == {
            "log_path": "/tmp/fc.log",
            "level": "Debug",
            "show_level": True,
            "show_log_origin": True,
        }

    def test_metrics_for_vm(self) -> None:
        assert Metrics.for_vm("web-1").metrics_path == "/tmp/firecracker-metrics-web-1.json"


class TestBalloon:
    def test_with_statistics_requires_positive_interval(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            Balloon.with_statistics(64, 0)

    def test_statistics_derived_values(self) -> None:
        stats = BalloonStatistics(
            target_pages=200,
            actual_pages=150,
            target_mib=64,
            actual_mib=48,
            total_memory=1000,
            available_memory=250,
        )
        assert stats.efficiency == pytest.approx(75.0)
        assert not stats.is_at_target
        assert stats.memory_pressure == pytest.approx(75.0)

    def test_statistics_without_memory_report(self) -> None:
        stats = BalloonStatistics(target_pages=0, actual_pages=0, target_mib=0, actual_mib=0)
        assert stats.efficiency == pytest.approx(100.0)
        assert stats.is_at_target
        assert stats.memory_pressure is None


class TestVSock:
    def test_reserved_cids_rejected(self) -> None:
        with pytest.raises(ValidationError):
            VSock(guest_cid=2, uds_path="/tmp/v.sock")

    def test_default_id_omitted(self) -> None:
        assert VSock(guest_cid=3, uds_path="/tmp/v.sock").encode() == {"guest_cid": 3, "uds_path": "/tmp/v.sock"}


# ============================================================================
# Snapshots / actions / instance info
# ============================================================================


class TestSnapshotParams:
    def test_diff_snapshot_body(self) -> None:
        body = SnapshotCreateParams.diff("/s/a.json", "/s/a.mem").encode()
        assert body == {"snapshot_type": "Diff", "snapshot_path": "/s/a.json", "mem_file_path": "/s/a.mem"}

    def test_full_snapshot_type_omitted(self) -> None:
        assert "snapshot_type" not in SnapshotCreateParams.full("/s/a.json", "/s/a.mem").encode()

    def test_for_vm_paths(self) -> None:
        params = SnapshotCreateParams.for_vm("web-1", "/snaps", SnapshotType.DIFF)
        assert params.snapshot_path.startswith("/snaps/snapshot-web-1-")
        assert params.mem_file_path.startswith("/snaps/memory-web-1-")
        assert params.snapshot_type is SnapshotType.DIFF


class TestInstanceModels:
    @pytest.mark.parametrize("action", list(ActionType))
    def test_action_body(self, action: ActionType) -> None:
        assert InstanceAction(action_type=action).encode() == {"action_type": action.value}

    def test_decode_ignores_unknown_fields(self) -> None:
        info = InstanceInfo.decode(b'{"id": "a", "state": "Paused", "vmm_version": "1.7.0", "new_field": [1]}')
        assert info.state == "Paused"
        assert info.app_name == ""

    def test_decode_failure(self) -> None:
        with pytest.raises(ApiDeserializationError) as exc_info:
            BalloonStatistics.decode('{"target_pages": "many"}', "GET /balloon/statistics")
        assert exc_info.value.operation == "GET /balloon/statistics"
        assert exc_info.value.body == '{"target_pages": "many"}'
