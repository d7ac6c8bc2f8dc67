"""VM lifecycle states, transition table and operation results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from firecracker_control.exceptions import FirecrackerError
    from firecracker_control.models import MachineConfiguration

T = TypeVar("T")


class VmState(str, Enum):
    """Lifecycle state of a VirtualMachine.

    ERROR is absorbing: no operation leaves it, a new instance is required.
    PAUSED is a distinct state rather than a reuse of STOPPING.
    """

    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class VmOperation(str, Enum):
    """Operations guarded by the transition table."""

    START = "start"
    STOP = "stop"
    KILL = "kill"
    PAUSE = "pause"
    RESUME = "resume"
    CREATE_SNAPSHOT = "create_snapshot"
    LOAD_SNAPSHOT = "load_snapshot"
    UPDATE_BALLOON = "update_balloon"
    BALLOON_STATISTICS = "balloon_statistics"


# Source states from which each operation may be issued.
# Checked before any remote call; anything else is an invalid transition.
VALID_SOURCE_STATES: dict[VmOperation, frozenset[VmState]] = {
    VmOperation.START: frozenset({VmState.NOT_STARTED, VmState.STOPPED}),
    VmOperation.STOP: frozenset({VmState.RUNNING}),
    VmOperation.KILL: frozenset({VmState.RUNNING, VmState.STARTING}),
    VmOperation.PAUSE: frozenset({VmState.RUNNING}),
    VmOperation.RESUME: frozenset({VmState.PAUSED}),
    VmOperation.CREATE_SNAPSHOT: frozenset({VmState.PAUSED}),
    VmOperation.LOAD_SNAPSHOT: frozenset({VmState.NOT_STARTED}),
    VmOperation.UPDATE_BALLOON: frozenset({VmState.RUNNING, VmState.PAUSED}),
    VmOperation.BALLOON_STATISTICS: frozenset({VmState.RUNNING, VmState.PAUSED}),
}


@dataclass(frozen=True, slots=True)
class OperationResult(Generic[T]):
    """Outcome of a VirtualMachine operation.

    Lifecycle operations never raise FirecrackerError; they return a result
    carrying either a value or the error from the exception taxonomy.
    """

    value: T | None = None
    error: FirecrackerError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T | None:
        """Return the value, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: T | None = None) -> OperationResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: FirecrackerError) -> OperationResult[T]:
        return cls(error=error)


@dataclass(frozen=True, slots=True)
class VmInfo:
    """Local snapshot of a VM's identity and state."""

    name: str
    state: VmState
    configuration: MachineConfiguration
    socket_path: str
