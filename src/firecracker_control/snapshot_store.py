"""Snapshot file management: naming, listing and retention.

A SnapshotStore owns one directory of snapshots for one VM. It generates the
path pairs (``<name>.json`` state file + ``<name>.mem`` memory file) passed to
VirtualMachine.create_snapshot() / load_snapshot(), and prunes old snapshots
according to a RetentionPolicy.

Naming:
    snapshot-{vm_id}-{YYYYmmdd-HHMMSS-ffffff}[-{suffix}]
    migration-{vm_id}-{migration_id}

Timestamps sort lexicographically, so name order is creation order.
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Self

import aiofiles.os
from pydantic import BaseModel, ConfigDict, Field

from firecracker_control import constants
from firecracker_control._logging import get_logger
from firecracker_control.exceptions import FileSystemError, InvalidPathError, InvalidSnapshotError
from firecracker_control.models import SnapshotCreateParams, SnapshotLoadParams, SnapshotType
from firecracker_control.settings import Settings

logger = get_logger(__name__)

_SECONDS_PER_DAY = 86400


@dataclass(frozen=True, slots=True)
class SnapshotInfo:
    """A snapshot found on disk."""

    name: str
    snapshot_path: Path
    mem_file_path: Path
    size_bytes: int
    modified_at: float


class RetentionPolicy(BaseModel):
    """Which snapshots to keep. ``None`` disables a limit.

    Attributes:
        max_snapshots: Keep at most this many (newest first)
        max_age_days: Drop snapshots whose files are older than this
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_snapshots: int | None = Field(default=constants.DEFAULT_SNAPSHOT_RETENTION, ge=1)
    max_age_days: int | None = Field(default=None, ge=1)

    @classmethod
    def keep_recent(cls, count: int) -> Self:
        return cls(max_snapshots=count)

    @classmethod
    def keep_for_days(cls, days: int) -> Self:
        return cls(max_snapshots=None, max_age_days=days)

    @classmethod
    def keep_all(cls) -> Self:
        return cls(max_snapshots=None, max_age_days=None)

    def select_expired(self, snapshots: list[SnapshotInfo], now: float) -> list[SnapshotInfo]:
        """Return the snapshots this policy would remove, oldest first."""
        ordered = sorted(snapshots, key=lambda s: s.name)
        expired: dict[str, SnapshotInfo] = {}
        if self.max_snapshots is not None and len(ordered) > self.max_snapshots:
            for snap in ordered[: len(ordered) - self.max_snapshots]:
                expired[snap.name] = snap
        if self.max_age_days is not None:
            cutoff = now - self.max_age_days * _SECONDS_PER_DAY
            for snap in ordered:
                if snap.modified_at < cutoff:
                    expired[snap.name] = snap
        return sorted(expired.values(), key=lambda s: s.name)


class SnapshotStore:
    """Snapshot directory for a single VM."""

    def __init__(
        self,
        base_dir: str | Path,
        vm_id: str,
        retention: RetentionPolicy | None = None,
        snapshot_type: SnapshotType = SnapshotType.FULL,
    ) -> None:
        if not vm_id.strip():
            raise InvalidPathError(vm_id, "VM ID cannot be blank")
        if not str(base_dir).strip():
            raise InvalidPathError(str(base_dir), "Base directory cannot be blank")
        self.base_dir = Path(base_dir)
        self.vm_id = vm_id
        self.retention = retention or RetentionPolicy()
        self.snapshot_type = snapshot_type

    @classmethod
    def from_settings(
        cls,
        vm_id: str,
        retention: RetentionPolicy | None = None,
        snapshot_type: SnapshotType = SnapshotType.FULL,
        settings: Settings | None = None,
    ) -> Self:
        """Store under ``<snapshot_dir>/<vm_id>`` from the environment-driven Settings."""
        settings = settings or Settings()
        return cls(settings.snapshot_dir / vm_id, vm_id, retention, snapshot_type)

    def paths(self, name: str) -> tuple[Path, Path]:
        """(state file, memory file) for snapshot ``name``."""
        return (
            self.base_dir / f"{name}{constants.SNAPSHOT_FILE_SUFFIX}",
            self.base_dir / f"{name}{constants.SNAPSHOT_MEMORY_SUFFIX}",
        )

    def create_params(
        self, snapshot_type: SnapshotType | None = None, suffix: str | None = None
    ) -> SnapshotCreateParams:
        """Parameters for a new, uniquely named snapshot."""
        stamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S-%f")
        name = f"snapshot-{self.vm_id}-{stamp}"
        if suffix:
            name = f"{name}-{suffix}"
        snapshot_path, mem_path = self.paths(name)
        return SnapshotCreateParams(
            snapshot_type=snapshot_type or self.snapshot_type,
            snapshot_path=str(snapshot_path),
            mem_file_path=str(mem_path),
        )

    def migration_params(self, target_dir: str | Path, migration_id: str | None = None) -> SnapshotCreateParams:
        """Full snapshot written straight into ``target_dir`` for moving the VM to another host."""
        migration_id = migration_id or datetime.now(UTC).strftime("%Y%m%d%H%M%S")
        name = f"migration-{self.vm_id}-{migration_id}"
        target = Path(target_dir)
        return SnapshotCreateParams.full(
            snapshot_path=str(target / f"{name}{constants.SNAPSHOT_FILE_SUFFIX}"),
            mem_file_path=str(target / f"{name}{constants.SNAPSHOT_MEMORY_SUFFIX}"),
        )

    async def load_params(self, name: str, *, resume: bool = False, enable_diff: bool = False) -> SnapshotLoadParams:
        """Parameters to restore snapshot ``name``.

        Raises:
            InvalidSnapshotError: The state or memory file is missing
        """
        snapshot_path, mem_path = self.paths(name)
        for path in (snapshot_path, mem_path):
            if not await aiofiles.os.path.isfile(path):
                raise InvalidSnapshotError(str(path), "file does not exist")
        return SnapshotLoadParams(
            snapshot_path=str(snapshot_path),
            mem_file_path=str(mem_path),
            resume_vm=resume,
            enable_diff_snapshots=enable_diff,
        )

    async def ensure_directory(self) -> None:
        """Create the snapshot directory if needed."""
        try:
            await aiofiles.os.makedirs(self.base_dir, exist_ok=True)
        except OSError as e:
            raise FileSystemError("create directory", str(self.base_dir), e) from e

    async def list_snapshots(self) -> list[SnapshotInfo]:
        """Snapshots of this VM in the directory, oldest first.

        A state file without its memory file is not a usable snapshot and is skipped.
        """
        if not await aiofiles.os.path.isdir(self.base_dir):
            return []
        try:
            entries = await aiofiles.os.listdir(self.base_dir)
        except OSError as e:
            raise FileSystemError("list", str(self.base_dir), e) from e

        pattern = re.compile(rf"snapshot-{re.escape(self.vm_id)}-\d{{8}}-\d{{6}}-\d{{6}}(-.+)?")
        names = []
        for entry in entries:
            stem = entry.removesuffix(constants.SNAPSHOT_FILE_SUFFIX)
            if stem != entry and pattern.fullmatch(stem):
                names.append(stem)
        names.sort()
        results = await asyncio.gather(*(self._stat(name) for name in names))
        return [info for info in results if info is not None]

    async def _stat(self, name: str) -> SnapshotInfo | None:
        snapshot_path, mem_path = self.paths(name)
        try:
            state_stat = await aiofiles.os.stat(snapshot_path)
            mem_stat = await aiofiles.os.stat(mem_path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FileSystemError("stat", str(snapshot_path), e) from e
        return SnapshotInfo(
            name=name,
            snapshot_path=snapshot_path,
            mem_file_path=mem_path,
            size_bytes=state_stat.st_size + mem_stat.st_size,
            modified_at=max(state_stat.st_mtime, mem_stat.st_mtime),
        )

    async def prune(self) -> list[str]:
        """Delete snapshots outside the retention policy.

        Returns:
            Names of the removed snapshots, oldest first
        """
        expired = self.retention.select_expired(await self.list_snapshots(), time.time())
        for snap in expired:
            await self.delete(snap.name)
        if expired:
            logger.info(
                "Pruned snapshots",
                extra={"vm_id": self.vm_id, "removed": len(expired), "base_dir": str(self.base_dir)},
            )
        return [snap.name for snap in expired]

    async def delete(self, name: str) -> None:
        """Remove both files of snapshot ``name``; already-missing files are ignored."""
        for path in self.paths(name):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise FileSystemError("remove", str(path), e) from e
