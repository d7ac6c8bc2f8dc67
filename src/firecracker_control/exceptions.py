"""Exception hierarchy for firecracker-control.

All exceptions inherit from FirecrackerError. The set is closed: the
classification helpers in error_handling match over every concrete class
listed here, and tests fail when a new class is added without being handled.

Hierarchy:
    FirecrackerError (base)
    ├── VmError
    │   ├── VmInvalidStateTransitionError   ← operation not valid in current state
    │   ├── VmInvalidConfigurationError     ← VM config rejected
    │   ├── VmResourceAllocationFailedError ← resource could not be attached
    │   ├── VmOperationTimeoutError         ← wait_for_state / stop timed out
    │   └── VmOperationFailedError          ← lifecycle step failed (wraps cause)
    ├── InputValidationError (never retryable)
    │   ├── MissingRequiredFieldError
    │   ├── InvalidRangeError
    │   ├── InvalidFormatError
    │   └── InvalidPathError
    ├── ResourceError
    │   ├── ResourceUnavailableError
    │   ├── ResourceLimitExceededError
    │   └── FileSystemError
    ├── ApiError
    │   ├── ApiHttpError                    ← non-2xx response from the VMM
    │   ├── ApiSerializationError           ← request body could not be encoded
    │   ├── ApiDeserializationError         ← response body could not be decoded
    │   └── ApiConnectionFailedError        ← endpoint unreachable
    ├── SnapshotError
    │   ├── InvalidSnapshotError
    │   ├── SnapshotCreationFailedError
    │   └── SnapshotRestorationFailedError
    └── ClientError (transport, raised by FirecrackerClient only)
        ├── ClientTimeoutError
        ├── ClientIOError
        ├── ClientSerializationError
        └── ClientUnknownError
"""

from __future__ import annotations

from typing import Any


class FirecrackerError(Exception):
    """Base exception for all firecracker-control errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if cause is not None:
            self.__cause__ = cause


# =============================================================================
# VM Lifecycle Errors
# =============================================================================


class VmError(FirecrackerError):
    """Base for VM lifecycle and operation errors."""


class VmInvalidStateTransitionError(VmError):
    """Operation attempted from a state that does not allow it.

    Raised (or returned) before any remote call is issued.
    """

    def __init__(self, current_state: str, attempted_operation: str, vm_name: str):
        super().__init__(
            f"Cannot perform '{attempted_operation}' on VM '{vm_name}' in state '{current_state}'",
            {"current_state": current_state, "operation": attempted_operation, "vm_name": vm_name},
        )
        self.current_state = current_state
        self.attempted_operation = attempted_operation
        self.vm_name = vm_name


class VmInvalidConfigurationError(VmError):
    """VM configuration is invalid."""

    def __init__(self, field: str, reason: str, vm_name: str):
        super().__init__(
            f"Invalid configuration for VM '{vm_name}': {field} - {reason}",
            {"field": field, "reason": reason, "vm_name": vm_name},
        )
        self.field = field
        self.reason = reason
        self.vm_name = vm_name


class VmResourceAllocationFailedError(VmError):
    """A resource (drive, interface, balloon) could not be allocated to the VM."""

    def __init__(self, resource: str, details: str, vm_name: str, cause: BaseException | None = None):
        super().__init__(
            f"Failed to allocate {resource} for VM '{vm_name}': {details}",
            {"resource": resource, "details": details, "vm_name": vm_name},
            cause,
        )
        self.resource = resource
        self.details = details
        self.vm_name = vm_name


class VmOperationTimeoutError(VmError):
    """VM operation did not complete within its timeout."""

    def __init__(self, operation: str, timeout_ms: int, vm_name: str):
        super().__init__(
            f"Operation '{operation}' timed out after {timeout_ms}ms for VM '{vm_name}'",
            {"operation": operation, "timeout_ms": timeout_ms, "vm_name": vm_name},
        )
        self.operation = operation
        self.timeout_ms = timeout_ms
        self.vm_name = vm_name


class VmOperationFailedError(VmError):
    """Lifecycle operation failed.

    Attributes:
        operation: Public operation name (start, stop, kill, ...)
        vm_name: Name of the VM
        phase: Step that failed (machine-config, drive, network-interface, ...)
        resource_id: Identifier of the failing resource (drive id, iface id)
    """

    def __init__(
        self,
        operation: str,
        vm_name: str,
        cause: BaseException | None,
        *,
        phase: str | None = None,
        resource_id: str | None = None,
    ):
        where = ""
        if phase is not None:
            where = f" at {phase} '{resource_id}'" if resource_id is not None else f" at {phase}"
        detail = str(cause) if cause is not None else "unknown error"
        super().__init__(
            f"Operation '{operation}' failed for VM '{vm_name}'{where}: {detail}",
            {"operation": operation, "vm_name": vm_name, "phase": phase, "resource_id": resource_id},
            cause,
        )
        self.operation = operation
        self.vm_name = vm_name
        self.phase = phase
        self.resource_id = resource_id


# =============================================================================
# Input Validation Errors
# =============================================================================


class InputValidationError(FirecrackerError):
    """Base for configuration validation errors (caller bugs, never retryable)."""


class MissingRequiredFieldError(InputValidationError):
    """Required field is missing."""

    def __init__(self, field_name: str, location: str):
        super().__init__(
            f"Required field '{field_name}' is missing in {location}",
            {"field": field_name, "location": location},
        )
        self.field_name = field_name
        self.location = location


class InvalidRangeError(InputValidationError):
    """Field value is outside its valid range."""

    def __init__(self, field_name: str, value: Any, valid_range: str):
        super().__init__(
            f"Field '{field_name}' value '{value}' is not in valid range: {valid_range}",
            {"field": field_name, "value": value, "valid_range": valid_range},
        )
        self.field_name = field_name
        self.value = value
        self.valid_range = valid_range


class InvalidFormatError(InputValidationError):
    """Field value has an invalid format."""

    def __init__(self, field_name: str, value: str, expected_format: str):
        super().__init__(
            f"Field '{field_name}' value '{value}' has invalid format. Expected: {expected_format}",
            {"field": field_name, "value": value, "expected_format": expected_format},
        )
        self.field_name = field_name
        self.value = value
        self.expected_format = expected_format


class InvalidPathError(InputValidationError):
    """Path is invalid or inaccessible."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Invalid path '{path}': {reason}", {"path": path, "reason": reason})
        self.path = path
        self.reason = reason


# =============================================================================
# Resource Errors
# =============================================================================


class ResourceError(FirecrackerError):
    """Base for host resource errors."""


class ResourceUnavailableError(ResourceError):
    """Resource is not available or already in use."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} '{resource_id}' is not available or already in use",
            {"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ResourceLimitExceededError(ResourceError):
    """Resource limit exceeded."""

    def __init__(self, resource_type: str, limit: int, current: int):
        super().__init__(
            f"{resource_type} limit exceeded: current={current}, limit={limit}",
            {"resource_type": resource_type, "limit": limit, "current": current},
        )
        self.resource_type = resource_type
        self.limit = limit
        self.current = current


class FileSystemError(ResourceError):
    """File or socket operation failed."""

    def __init__(self, operation: str, path: str, cause: BaseException | None):
        super().__init__(
            f"File system operation '{operation}' failed for path '{path}': {cause}",
            {"operation": operation, "path": path},
            cause,
        )
        self.operation = operation
        self.path = path


# =============================================================================
# API Errors
# =============================================================================


class ApiError(FirecrackerError):
    """Base for control API errors."""


class ApiHttpError(ApiError):
    """The VMM answered with a non-2xx status.

    Attributes:
        status_code: HTTP status code
        operation: "<VERB> <path>" of the failed request
        body: Fault message or raw response body, if any
    """

    def __init__(self, status_code: int, operation: str, body: str | None = None):
        suffix = f": {body}" if body else ""
        super().__init__(
            f"HTTP {status_code} error for operation '{operation}'{suffix}",
            {"status_code": status_code, "operation": operation, "body": body},
        )
        self.status_code = status_code
        self.operation = operation
        self.body = body


class ApiSerializationError(ApiError):
    """Request body could not be serialized."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(
            f"Failed to serialize request for operation '{operation}': {cause}",
            {"operation": operation},
            cause,
        )
        self.operation = operation


class ApiDeserializationError(ApiError):
    """Response body could not be parsed."""

    def __init__(self, operation: str, body: str, cause: BaseException):
        super().__init__(
            f"Failed to parse response for operation '{operation}': {cause}",
            {"operation": operation, "body": body},
            cause,
        )
        self.operation = operation
        self.body = body


class ApiConnectionFailedError(ApiError):
    """Connection to the VMM control endpoint failed."""

    def __init__(self, socket_path: str, client_error: ClientError):
        super().__init__(
            f"Connection failed to Firecracker at '{socket_path}': {client_error.message}",
            {"socket_path": socket_path},
            client_error,
        )
        self.socket_path = socket_path
        self.client_error = client_error


# =============================================================================
# Snapshot Errors
# =============================================================================


class SnapshotError(FirecrackerError):
    """Base for snapshot errors."""


class InvalidSnapshotError(SnapshotError):
    """Snapshot file is missing, corrupted or otherwise unusable."""

    def __init__(self, snapshot_path: str, reason: str):
        super().__init__(
            f"Invalid snapshot file '{snapshot_path}': {reason}",
            {"snapshot_path": snapshot_path, "reason": reason},
        )
        self.snapshot_path = snapshot_path
        self.reason = reason


class SnapshotCreationFailedError(SnapshotError):
    """Snapshot creation failed."""

    def __init__(self, target_path: str, cause: BaseException | None):
        super().__init__(
            f"Failed to create snapshot at '{target_path}': {cause}",
            {"target_path": target_path},
            cause,
        )
        self.target_path = target_path


class SnapshotRestorationFailedError(SnapshotError):
    """Snapshot restoration failed."""

    def __init__(self, snapshot_path: str, cause: BaseException | None):
        super().__init__(
            f"Failed to restore from snapshot '{snapshot_path}': {cause}",
            {"snapshot_path": snapshot_path},
            cause,
        )
        self.snapshot_path = snapshot_path


# =============================================================================
# Transport Errors
# =============================================================================


class ClientError(FirecrackerError):
    """Base for transport failures talking to the control socket.

    Every failure inside FirecrackerClient is normalized to one of the
    four subclasses below; no httpx exception escapes the client.
    """

    _summary = "Failed to connect to Firecracker"

    def __init__(self, socket_path: str, cause: BaseException | None = None):
        super().__init__(f"{self._summary} at {socket_path}", {"socket_path": socket_path}, cause)
        self.socket_path = socket_path


class ClientTimeoutError(ClientError):
    """Request to the control socket timed out."""

    _summary = "Request timeout connecting to Firecracker"


class ClientIOError(ClientError):
    """I/O error on the control socket (refused, reset, missing socket)."""

    _summary = "IO error connecting to Firecracker"


class ClientSerializationError(ClientError):
    """Request or response body could not be (de)serialized."""

    _summary = "Failed to parse response from Firecracker"


class ClientUnknownError(ClientError):
    """Any other transport failure."""
