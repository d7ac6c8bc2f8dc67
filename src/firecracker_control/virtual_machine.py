"""VirtualMachine: lifecycle controller for a single Firecracker microVM.

Architecture:
- Owns one VmConfig (immutable) and one FirecrackerClient (lazy connection)
- Validates the current state against VALID_SOURCE_STATES before any remote call
- Issues control API calls sequentially, each wrapped in with_retry()
- Maps every failure into the exception taxonomy and returns OperationResult;
  FirecrackerError never crosses the public boundary
- Any unrecovered lifecycle failure moves the VM to ERROR (absorbing)

Concurrency:
    Lifecycle operations are serialized by a per-instance asyncio.Lock.
    kill() bypasses the lock so it can interrupt a VM that is
    still STARTING. Operations holding the lock re-check the state after each
    remote call; when kill() has moved the VM on, they stop without
    overwriting the state kill() set.
    wait_for_state() is observational and never takes the lock.

Usage:
    async with VirtualMachine(config) as vm:
        result = await vm.start()
        if not result.ok:
            print(human_message(result.error))
        await vm.stop()
"""

from __future__ import annotations

import asyncio
import types
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Literal, TypeVar

import aiofiles.os

from firecracker_control import constants
from firecracker_control._logging import get_logger
from firecracker_control.client import FirecrackerClient
from firecracker_control.config import VmConfig
from firecracker_control.exceptions import (
    ClientIOError,
    FirecrackerError,
    InvalidSnapshotError,
    SnapshotCreationFailedError,
    SnapshotRestorationFailedError,
    VmInvalidConfigurationError,
    VmInvalidStateTransitionError,
    VmOperationFailedError,
    VmOperationTimeoutError,
)
from firecracker_control.models import (
    ActionType,
    BalloonStatistics,
    BalloonUpdate,
    FirecrackerModel,
    InstanceAction,
    InstanceInfo,
    SnapshotCreateParams,
    SnapshotLoadParams,
)
from firecracker_control.retry import DEFAULT_POLICY, RetryConfig, RetryPolicy, with_retry
from firecracker_control.settings import Settings
from firecracker_control.vm_types import VALID_SOURCE_STATES, OperationResult, VmInfo, VmOperation, VmState

logger = get_logger(__name__)

M = TypeVar("M", bound=FirecrackerModel)


@dataclass(frozen=True, slots=True)
class ApiCall:
    """One control API request issued as part of a lifecycle operation.

    Attributes:
        verb: HTTP verb
        path: Control API path
        body: Request body
        phase: Step name reported in errors (machine-config, drive, ...)
        resource_id: Drive / interface id for per-resource steps
    """

    verb: Literal["PUT", "PATCH"]
    path: str
    body: FirecrackerModel
    phase: str
    resource_id: str | None = None


def _action(action_type: ActionType, phase: str) -> ApiCall:
    return ApiCall("PUT", constants.PATH_ACTIONS, InstanceAction(action_type=action_type), phase)


class VirtualMachine:
    """Lifecycle controller for one Firecracker microVM.

    Attributes:
        name: VM name from the configuration
        state: Current (locally cached) lifecycle state
        config: Immutable VM configuration
    """

    def __init__(
        self,
        config: VmConfig,
        *,
        client: FirecrackerClient | None = None,
        retry_config: RetryConfig | None = None,
        retry_policy: RetryPolicy = DEFAULT_POLICY,
        settings: Settings | None = None,
        initial_state: VmState = VmState.NOT_STARTED,
    ) -> None:
        """Create a controller. No connection is made.

        Args:
            config: VM configuration
            client: Control API client (default: one bound to config.socket_path)
            retry_config: Retry configuration for each API call (default: from settings)
            retry_policy: Retry policy (default: DefaultRetryPolicy)
            settings: Runtime settings (default: Settings() from environment)
            initial_state: State of an already-running VM being adopted (see connect_to)
        """
        settings = settings or Settings()
        self._config = config
        self._client = client or FirecrackerClient(
            config.socket_path,
            request_timeout=settings.request_timeout,
            connect_timeout=settings.connect_timeout,
        )
        self._retry_config = retry_config or settings.retry_config()
        self._retry_policy = retry_policy
        self._stop_timeout = settings.stop_timeout
        self._poll_interval = settings.poll_interval
        self._state = initial_state
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> VmConfig:
        return self._config

    @property
    def state(self) -> VmState:
        """Current VM state (local projection, not queried from Firecracker)."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is VmState.RUNNING

    def info(self) -> VmInfo:
        """Snapshot of the VM's identity and current state."""
        return VmInfo(
            name=self.name,
            state=self._state,
            configuration=self._config.machine,
            socket_path=self._config.socket_path,
        )

    async def close(self) -> None:
        """Release the control socket connection."""
        await self._client.close()

    async def __aenter__(self) -> VirtualMachine:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # State helpers
    # -------------------------------------------------------------------------

    def _check(self, operation: VmOperation) -> VmInvalidStateTransitionError | None:
        if self._state in VALID_SOURCE_STATES[operation]:
            return None
        logger.debug(
            "Rejected invalid state transition",
            extra={"vm_name": self.name, "operation": operation.value, "current_state": self._state.value},
        )
        return VmInvalidStateTransitionError(self._state.value, operation.value, self.name)

    def _set_state(self, new_state: VmState) -> None:
        old_state = self._state
        self._state = new_state
        logger.debug(
            "VM state transition",
            extra={
                "debug_category": "lifecycle",
                "vm_name": self.name,
                "old_state": old_state.value,
                "new_state": new_state.value,
            },
        )

    def _fail(self, error: FirecrackerError) -> OperationResult[None]:
        self._set_state(VmState.ERROR)
        logger.warning(
            "VM operation failed: %s",
            error.message,
            extra={"vm_name": self.name, "error_type": type(error).__name__},
        )
        return OperationResult.failure(error)

    # -------------------------------------------------------------------------
    # Remote calls
    # -------------------------------------------------------------------------

    async def _send(self, call: ApiCall) -> None:
        send = self._client.put if call.verb == "PUT" else self._client.patch
        await with_retry(
            lambda: send(call.path, call.body),
            self._retry_config,
            self._retry_policy,
            name=f"{call.verb} {call.path} ({self.name})",
        )

    async def _fetch(self, path: str, response_model: type[M]) -> M:
        return await with_retry(
            lambda: self._client.get(path, response_model),
            self._retry_config,
            self._retry_policy,
            name=f"GET {path} ({self.name})",
        )

    def _start_calls(self) -> Iterator[ApiCall]:
        config = self._config
        yield ApiCall("PUT", constants.PATH_MACHINE_CONFIG, config.machine, "machine-config")
        yield ApiCall("PUT", constants.PATH_BOOT_SOURCE, config.boot_source, "boot-source")
        for drive in config.drives:
            yield ApiCall("PUT", f"{constants.PATH_DRIVES}/{drive.drive_id}", drive, "drive", drive.drive_id)
        for iface in config.network_interfaces:
            path = f"{constants.PATH_NETWORK_INTERFACES}/{iface.iface_id}"
            yield ApiCall("PUT", path, iface, "network-interface", iface.iface_id)
        if config.logger is not None:
            yield ApiCall("PUT", constants.PATH_LOGGER, config.logger, "logger")
        if config.metrics is not None:
            yield ApiCall("PUT", constants.PATH_METRICS, config.metrics, "metrics")
        if config.balloon is not None:
            yield ApiCall("PUT", constants.PATH_BALLOON, config.balloon, "balloon")
        if config.vsock is not None:
            yield ApiCall("PUT", constants.PATH_VSOCK, config.vsock, "vsock", config.vsock.vsock_id)
        yield _action(ActionType.INSTANCE_START, "instance-start")

    # -------------------------------------------------------------------------
    # Lifecycle operations
    # -------------------------------------------------------------------------

    async def start(self) -> OperationResult[None]:
        """Configure the VM and boot it.

        Steps run fail-fast in order: machine-config, boot-source, each drive,
        each network interface, optional logger/metrics/balloon/vsock, then
        InstanceStart. The first failing step aborts the rest.

        Returns:
            Success with state RUNNING, or failure carrying a
            VmOperationFailedError naming the failing phase and resource
            (state ERROR). Invalid source states fail with
            VmInvalidStateTransitionError and no remote call.
        """
        async with self._lock:
            if error := self._check(VmOperation.START):
                return OperationResult.failure(error)

            self._set_state(VmState.STARTING)
            logger.info("Starting VM", extra={"vm_name": self.name, "socket_path": self._config.socket_path})

            for call in self._start_calls():
                if self._state is not VmState.STARTING:
                    return self._interrupted("start", call)
                try:
                    await self._send(call)
                except FirecrackerError as e:
                    error = VmOperationFailedError(
                        "start", self.name, e, phase=call.phase, resource_id=call.resource_id
                    )
                    if self._state is not VmState.STARTING:
                        return OperationResult.failure(error)
                    return self._fail(error)

            if self._state is not VmState.STARTING:
                return self._interrupted("start", None)
            self._set_state(VmState.RUNNING)
            logger.info("VM running", extra={"vm_name": self.name})
            return OperationResult.success()

    def _interrupted(self, operation: str, call: ApiCall | None) -> OperationResult[None]:
        """A concurrent kill() moved the VM on mid-operation; keep the state kill() set."""
        cause = VmInvalidStateTransitionError(self._state.value, operation, self.name)
        return OperationResult.failure(
            VmOperationFailedError(
                operation,
                self.name,
                cause,
                phase=call.phase if call else None,
                resource_id=call.resource_id if call else None,
            )
        )

    async def stop(self, timeout: float | None = None) -> OperationResult[None]:
        """Gracefully shut the VM down (SendCtrlAltDel) and wait until it is stopped.

        Confirmation polls the control socket: once the Firecracker process
        stops answering after the shutdown request, the VM is STOPPED.

        Args:
            timeout: Seconds to wait for confirmation (default: settings.stop_timeout)
        """
        async with self._lock:
            if error := self._check(VmOperation.STOP):
                return OperationResult.failure(error)

            self._set_state(VmState.STOPPING)
            try:
                await self._send(_action(ActionType.SEND_CTRL_ALT_DEL, "send-ctrl-alt-del"))
            except FirecrackerError as e:
                return self._fail(VmOperationFailedError("stop", self.name, e, phase="send-ctrl-alt-del"))

            waited = await self.wait_for_state(
                VmState.STOPPED,
                self._stop_timeout if timeout is None else timeout,
                refresh=True,
            )
            if waited.error is not None:
                return self._fail(VmOperationFailedError("stop", self.name, waited.error, phase="wait-for-stopped"))

            logger.info("VM stopped", extra={"vm_name": self.name})
            return OperationResult.success()

    async def kill(self) -> OperationResult[None]:
        """Force-stop the VM (InstanceStop) without waiting for confirmation.

        Valid from RUNNING and STARTING; success sets STOPPED optimistically.
        """
        if error := self._check(VmOperation.KILL):
            return OperationResult.failure(error)

        self._set_state(VmState.STOPPING)
        try:
            await self._send(_action(ActionType.INSTANCE_STOP, "instance-stop"))
        except FirecrackerError as e:
            return self._fail(VmOperationFailedError("kill", self.name, e, phase="instance-stop"))

        self._set_state(VmState.STOPPED)
        logger.info("VM killed", extra={"vm_name": self.name})
        return OperationResult.success()

    async def pause(self) -> OperationResult[None]:
        """Pause a running VM."""
        return await self._toggle(VmOperation.PAUSE, ActionType.PAUSE, VmState.PAUSED)

    async def resume(self) -> OperationResult[None]:
        """Resume a paused VM."""
        return await self._toggle(VmOperation.RESUME, ActionType.RESUME, VmState.RUNNING)

    async def _toggle(self, operation: VmOperation, action: ActionType, target: VmState) -> OperationResult[None]:
        async with self._lock:
            if error := self._check(operation):
                return OperationResult.failure(error)
            source = self._state
            call = _action(action, operation.value)
            try:
                await self._send(call)
            except FirecrackerError as e:
                error = VmOperationFailedError(operation.value, self.name, e, phase=operation.value)
                if self._state is not source:
                    return OperationResult.failure(error)
                return self._fail(error)
            if self._state is not source:
                return self._interrupted(operation.value, call)
            self._set_state(target)
            return OperationResult.success()

    async def wait_for_state(
        self,
        target: VmState,
        timeout: float = constants.WAIT_FOR_STATE_TIMEOUT_SECONDS,
        *,
        refresh: bool = False,
    ) -> OperationResult[None]:
        """Wait until the cached state equals ``target``.

        Polls the in-memory state every poll interval. Without ``refresh``
        this cannot observe changes made outside this controller. With
        ``refresh``, each iteration also queries the control socket; an
        unreachable socket while STOPPING is recorded as STOPPED.

        A timed-out wait leaves the state unchanged.

        Returns:
            Success once the state matches, or failure with
            VmOperationTimeoutError after ``timeout`` seconds.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if self._state is target:
                return OperationResult.success()
            if refresh:
                await self._refresh_state()
                if self._state is target:
                    return OperationResult.success()
            remaining = deadline - loop.time()
            if remaining <= 0:
                return OperationResult.failure(
                    VmOperationTimeoutError(f"wait_for_state({target.value})", int(timeout * 1000), self.name)
                )
            await asyncio.sleep(min(self._poll_interval, remaining))

    async def _refresh_state(self) -> None:
        try:
            await self._client.describe_instance()
        except ClientIOError:
            if self._state is VmState.STOPPING:
                logger.debug("Control socket gone after shutdown request", extra={"vm_name": self.name})
                self._set_state(VmState.STOPPED)
        except FirecrackerError as e:
            logger.debug("State refresh failed: %s", e, extra={"vm_name": self.name})

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    async def create_snapshot(self, params: SnapshotCreateParams) -> OperationResult[None]:
        """Write a snapshot of a paused VM to ``params`` paths."""
        async with self._lock:
            if error := self._check(VmOperation.CREATE_SNAPSHOT):
                return OperationResult.failure(error)
            try:
                await self._send(ApiCall("PUT", constants.PATH_SNAPSHOT_CREATE, params, "snapshot-create"))
            except FirecrackerError as e:
                return self._fail(SnapshotCreationFailedError(params.snapshot_path, e))
            logger.info("Snapshot created", extra={"vm_name": self.name, "snapshot_path": params.snapshot_path})
            return OperationResult.success()

    async def load_snapshot(self, params: SnapshotLoadParams) -> OperationResult[None]:
        """Restore a fresh VM from a snapshot instead of booting it.

        Ends RUNNING when ``params.resume_vm`` is set, PAUSED otherwise.
        Missing snapshot files fail with InvalidSnapshotError before any
        remote call, leaving the state unchanged.
        """
        async with self._lock:
            if error := self._check(VmOperation.LOAD_SNAPSHOT):
                return OperationResult.failure(error)
            for path in (params.snapshot_path, params.mem_file_path):
                if not await aiofiles.os.path.exists(path):
                    return OperationResult.failure(InvalidSnapshotError(path, "file does not exist"))

            self._set_state(VmState.STARTING)
            call = ApiCall("PUT", constants.PATH_SNAPSHOT_LOAD, params, "snapshot-load")
            try:
                await self._send(call)
            except FirecrackerError as e:
                error = SnapshotRestorationFailedError(params.snapshot_path, e)
                if self._state is not VmState.STARTING:
                    return OperationResult.failure(error)
                return self._fail(error)
            if self._state is not VmState.STARTING:
                return self._interrupted(VmOperation.LOAD_SNAPSHOT.value, call)

            self._set_state(VmState.RUNNING if params.resume_vm else VmState.PAUSED)
            logger.info("Snapshot loaded", extra={"vm_name": self.name, "snapshot_path": params.snapshot_path})
            return OperationResult.success()

    # -------------------------------------------------------------------------
    # Balloon / inspection (no lifecycle transition)
    # -------------------------------------------------------------------------

    def _require_balloon(self, *, statistics: bool = False) -> VmInvalidConfigurationError | None:
        balloon = self._config.balloon
        if balloon is None:
            return VmInvalidConfigurationError("balloon", "no balloon device configured", self.name)
        if statistics and balloon.stats_polling_interval_s == 0:
            return VmInvalidConfigurationError("balloon", "statistics polling is disabled", self.name)
        return None

    async def update_balloon(self, amount_mib: int) -> OperationResult[None]:
        """Change the balloon target size of a running or paused VM."""
        async with self._lock:
            if error := self._check(VmOperation.UPDATE_BALLOON) or self._require_balloon():
                return OperationResult.failure(error)
            update = BalloonUpdate(amount_mib=amount_mib)
            try:
                await self._send(ApiCall("PATCH", constants.PATH_BALLOON, update, "balloon"))
            except FirecrackerError as e:
                return OperationResult.failure(VmOperationFailedError("update_balloon", self.name, e, phase="balloon"))
            return OperationResult.success()

    async def balloon_statistics(self) -> OperationResult[BalloonStatistics]:
        """Fetch balloon statistics (requires stats_polling_interval_s > 0)."""
        async with self._lock:
            if error := self._check(VmOperation.BALLOON_STATISTICS) or self._require_balloon(statistics=True):
                return OperationResult.failure(error)
            try:
                stats = await self._fetch(constants.PATH_BALLOON_STATISTICS, BalloonStatistics)
            except FirecrackerError as e:
                return OperationResult.failure(
                    VmOperationFailedError("balloon_statistics", self.name, e, phase="balloon-statistics")
                )
            return OperationResult.success(stats)

    async def describe(self) -> OperationResult[InstanceInfo]:
        """Query Firecracker for instance information (GET /)."""
        try:
            info = await self._fetch(constants.PATH_INSTANCE, InstanceInfo)
        except FirecrackerError as e:
            return OperationResult.failure(VmOperationFailedError("describe", self.name, e))
        return OperationResult.success(info)
