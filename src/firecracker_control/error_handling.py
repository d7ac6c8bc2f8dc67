"""Classification helpers over the closed exception set.

Each helper matches exhaustively over ErrorVariant and ends in assert_never,
so a type checker flags any exception class added to exceptions.py without a
matching case. tests/test_error_handling.py enforces the same at runtime by
walking every concrete FirecrackerError subclass.
"""

from __future__ import annotations

from typing import TypeAlias, assert_never, cast

from firecracker_control import constants
from firecracker_control.exceptions import (
    ApiConnectionFailedError,
    ApiDeserializationError,
    ApiHttpError,
    ApiSerializationError,
    ClientIOError,
    ClientSerializationError,
    ClientTimeoutError,
    ClientUnknownError,
    FileSystemError,
    FirecrackerError,
    InvalidFormatError,
    InvalidPathError,
    InvalidRangeError,
    InvalidSnapshotError,
    MissingRequiredFieldError,
    ResourceLimitExceededError,
    ResourceUnavailableError,
    SnapshotCreationFailedError,
    SnapshotRestorationFailedError,
    VmInvalidConfigurationError,
    VmInvalidStateTransitionError,
    VmOperationFailedError,
    VmOperationTimeoutError,
    VmResourceAllocationFailedError,
)

ErrorVariant: TypeAlias = (
    VmInvalidStateTransitionError
    | VmInvalidConfigurationError
    | VmResourceAllocationFailedError
    | VmOperationTimeoutError
    | VmOperationFailedError
    | MissingRequiredFieldError
    | InvalidRangeError
    | InvalidFormatError
    | InvalidPathError
    | ResourceUnavailableError
    | ResourceLimitExceededError
    | FileSystemError
    | ApiHttpError
    | ApiSerializationError
    | ApiDeserializationError
    | ApiConnectionFailedError
    | InvalidSnapshotError
    | SnapshotCreationFailedError
    | SnapshotRestorationFailedError
    | ClientTimeoutError
    | ClientIOError
    | ClientSerializationError
    | ClientUnknownError
)

_TRANSIENT_STATUS_CODES = frozenset(
    {
        constants.HTTP_TOO_MANY_REQUESTS,
        constants.HTTP_SERVICE_UNAVAILABLE,
        constants.HTTP_GATEWAY_TIMEOUT,
    }
)


def _is_server_error(status_code: int) -> bool:
    return constants.HTTP_SERVER_ERROR_MIN <= status_code <= constants.HTTP_SERVER_ERROR_MAX


def is_retryable(error: BaseException) -> bool:
    """Whether an operation that failed with ``error`` should be retried.

    Only transport timeouts, transport I/O errors and 5xx API responses are
    retryable. Validation and state errors never are.
    """
    if not isinstance(error, FirecrackerError):
        return False
    variant = cast("ErrorVariant", error)
    match variant:
        case ClientTimeoutError() | ClientIOError():
            return True
        case ApiHttpError(status_code=status_code):
            return _is_server_error(status_code)
        case (
            ClientSerializationError()
            | ClientUnknownError()
            | ApiSerializationError()
            | ApiDeserializationError()
            | ApiConnectionFailedError()
            | VmInvalidStateTransitionError()
            | VmInvalidConfigurationError()
            | VmResourceAllocationFailedError()
            | VmOperationTimeoutError()
            | VmOperationFailedError()
            | MissingRequiredFieldError()
            | InvalidRangeError()
            | InvalidFormatError()
            | InvalidPathError()
            | ResourceUnavailableError()
            | ResourceLimitExceededError()
            | FileSystemError()
            | InvalidSnapshotError()
            | SnapshotCreationFailedError()
            | SnapshotRestorationFailedError()
        ):
            return False
        case _:
            assert_never(variant)


def is_transient(error: BaseException) -> bool:
    """Whether ``error`` is likely to clear up on its own.

    Broader than is_retryable: also covers rate limiting / gateway statuses
    and resources that are temporarily in use.
    """
    if not isinstance(error, FirecrackerError):
        return False
    variant = cast("ErrorVariant", error)
    match variant:
        case ClientTimeoutError() | ClientIOError() | ResourceUnavailableError():
            return True
        case ApiHttpError(status_code=status_code):
            return _is_server_error(status_code) or status_code in _TRANSIENT_STATUS_CODES
        case (
            ClientSerializationError()
            | ClientUnknownError()
            | ApiSerializationError()
            | ApiDeserializationError()
            | ApiConnectionFailedError()
            | VmInvalidStateTransitionError()
            | VmInvalidConfigurationError()
            | VmResourceAllocationFailedError()
            | VmOperationTimeoutError()
            | VmOperationFailedError()
            | MissingRequiredFieldError()
            | InvalidRangeError()
            | InvalidFormatError()
            | InvalidPathError()
            | ResourceLimitExceededError()
            | FileSystemError()
            | InvalidSnapshotError()
            | SnapshotCreationFailedError()
            | SnapshotRestorationFailedError()
        ):
            return False
        case _:
            assert_never(variant)


def human_message(error: BaseException) -> str:
    """User-facing message for ``error``."""
    if not isinstance(error, FirecrackerError):
        return str(error) or f"An unexpected error occurred: {type(error).__name__}"
    variant = cast("ErrorVariant", error)
    match variant:
        case VmInvalidStateTransitionError():
            return (
                f"The VM is currently {variant.current_state} and cannot {variant.attempted_operation}. "
                "Please wait for the current operation to complete or stop the VM first."
            )
        case VmOperationTimeoutError():
            return f"VM '{variant.vm_name}' did not finish '{variant.operation}' within {variant.timeout_ms}ms."
        case MissingRequiredFieldError():
            return f"Configuration error: {variant.field_name} is required for {variant.location}."
        case ResourceUnavailableError():
            return (
                f"The {variant.resource_type} '{variant.resource_id}' is currently unavailable. "
                "It may be in use by another VM or process."
            )
        case ApiConnectionFailedError():
            return (
                "Unable to connect to Firecracker. Please ensure the Firecracker process is running "
                f"and accessible at {variant.socket_path}."
            )
        case ClientTimeoutError() | ClientIOError() | ClientSerializationError() | ClientUnknownError():
            return f"{variant.message}. The Firecracker control socket did not respond as expected."
        case ApiHttpError():
            detail = variant.body or "no details"
            return f"Firecracker rejected '{variant.operation}' (HTTP {variant.status_code}): {detail}"
        case (
            VmInvalidConfigurationError()
            | VmResourceAllocationFailedError()
            | VmOperationFailedError()
            | InvalidRangeError()
            | InvalidFormatError()
            | InvalidPathError()
            | ResourceLimitExceededError()
            | FileSystemError()
            | ApiSerializationError()
            | ApiDeserializationError()
            | InvalidSnapshotError()
            | SnapshotCreationFailedError()
            | SnapshotRestorationFailedError()
        ):
            return variant.message
        case _:
            assert_never(variant)


_GENERIC_SUGGESTIONS = ["Check logs for more details", "Retry the operation"]


def recovery_suggestions(error: BaseException) -> list[str]:
    """Suggested recovery actions for ``error``."""
    if not isinstance(error, FirecrackerError):
        return list(_GENERIC_SUGGESTIONS)
    variant = cast("ErrorVariant", error)
    match variant:
        case VmInvalidStateTransitionError():
            return [
                "Wait for the current operation to complete",
                "Stop the VM and try again",
                "Check VM state before performing operations",
            ]
        case InvalidRangeError():
            return [
                f"Adjust the value to be within the valid range: {variant.valid_range}",
                "Check the documentation for valid values",
            ]
        case MissingRequiredFieldError() | InvalidFormatError() | InvalidPathError() | VmInvalidConfigurationError():
            return ["Fix the VM configuration and create a new VM instance"]
        case ResourceUnavailableError():
            return [
                "Stop other VMs that might be using this resource",
                "Use a different resource identifier",
                "Wait and retry the operation",
            ]
        case ApiConnectionFailedError() | ClientIOError():
            return [
                "Ensure Firecracker process is running",
                "Check socket path permissions",
                "Verify socket path exists and is accessible",
            ]
        case ClientTimeoutError() | VmOperationTimeoutError():
            return ["Increase the timeout", "Check whether the Firecracker process is overloaded"]
        case InvalidSnapshotError() | SnapshotRestorationFailedError():
            return ["Verify the snapshot and memory files exist and were created by a compatible Firecracker"]
        case (
            VmResourceAllocationFailedError()
            | VmOperationFailedError()
            | ResourceLimitExceededError()
            | FileSystemError()
            | ApiHttpError()
            | ApiSerializationError()
            | ApiDeserializationError()
            | SnapshotCreationFailedError()
            | ClientSerializationError()
            | ClientUnknownError()
        ):
            return list(_GENERIC_SUGGESTIONS)
        case _:
            assert_never(variant)
