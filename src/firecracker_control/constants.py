"""Constants for firecracker-control timeouts, limits and API paths."""

from typing import Final

# ============================================================================
# Control API Paths
# ============================================================================

PATH_INSTANCE: Final[str] = "/"
PATH_MACHINE_CONFIG: Final[str] = "/machine-config"
PATH_BOOT_SOURCE: Final[str] = "/boot-source"
PATH_DRIVES: Final[str] = "/drives"
PATH_NETWORK_INTERFACES: Final[str] = "/network-interfaces"
PATH_ACTIONS: Final[str] = "/actions"
PATH_LOGGER: Final[str] = "/logger"
PATH_METRICS: Final[str] = "/metrics"
PATH_SNAPSHOT_CREATE: Final[str] = "/snapshot/create"
PATH_SNAPSHOT_LOAD: Final[str] = "/snapshot/load"
PATH_BALLOON: Final[str] = "/balloon"
PATH_BALLOON_STATISTICS: Final[str] = "/balloon/statistics"
PATH_VSOCK: Final[str] = "/vsock"

# ============================================================================
# Client Timeouts
# ============================================================================

REQUEST_TIMEOUT_SECONDS: Final[float] = 30.0
"""Total timeout for a single control API request."""

CONNECT_TIMEOUT_SECONDS: Final[float] = 10.0
"""Timeout for connecting to the control socket."""

BASE_URL: Final[str] = "http://localhost"
"""Placeholder authority for requests routed over the Unix socket."""

# ============================================================================
# Lifecycle Timing
# ============================================================================

STOP_TIMEOUT_SECONDS: Final[float] = 10.0
"""How long stop() waits for the VM to be confirmed stopped."""

WAIT_FOR_STATE_TIMEOUT_SECONDS: Final[float] = 30.0
"""Default timeout for wait_for_state()."""

STATE_POLL_INTERVAL_SECONDS: Final[float] = 0.1
"""Fixed polling interval used by wait_for_state()."""

# ============================================================================
# Retry Defaults
# ============================================================================

RETRY_MAX_ATTEMPTS: Final[int] = 3
RETRY_INITIAL_DELAY_SECONDS: Final[float] = 0.1
RETRY_MAX_DELAY_SECONDS: Final[float] = 5.0
RETRY_BACKOFF_MULTIPLIER: Final[float] = 2.0
RETRY_JITTER_FACTOR: Final[float] = 0.1

# ============================================================================
# Machine Limits
# ============================================================================

MIN_VCPU_COUNT: Final[int] = 1
MAX_VCPU_COUNT: Final[int] = 32
DEFAULT_VCPU_COUNT: Final[int] = 1
DEFAULT_MEMORY_MIB: Final[int] = 512

MIN_GUEST_CID: Final[int] = 3
"""Guest CIDs 0-2 are reserved by the vsock specification."""

# ============================================================================
# HTTP Status Classes
# ============================================================================

HTTP_TOO_MANY_REQUESTS: Final[int] = 429
HTTP_SERVICE_UNAVAILABLE: Final[int] = 503
HTTP_GATEWAY_TIMEOUT: Final[int] = 504
HTTP_SERVER_ERROR_MIN: Final[int] = 500
HTTP_SERVER_ERROR_MAX: Final[int] = 599
HTTP_ERROR_MIN: Final[int] = 400

# ============================================================================
# Snapshots
# ============================================================================

SNAPSHOT_FILE_SUFFIX: Final[str] = ".json"
SNAPSHOT_MEMORY_SUFFIX: Final[str] = ".mem"
DEFAULT_SNAPSHOT_RETENTION: Final[int] = 5
"""Number of most recent snapshots kept by the default retention policy."""
