"""
LightTools Worker Configuration

Centralized constants for the worker process and the LightTools handler.
"""

import os

# =============================================================================
# Server configuration
# =============================================================================

# Error messages
NOT_CONNECTED_ERROR = "LightTools not connected"

# Default server configuration
DEFAULT_PORT = 8788
DEFAULT_HOST = "0.0.0.0"

# API key for authentication (optional but recommended)
LIGHTTOOLS_API_KEY = os.getenv("LIGHTTOOLS_API_KEY", None)

# Number of uvicorn workers behind this URL. Each worker attaches to the same
# LightTools PID, so anything above 1 lets two writers race on one session.
WORKER_COUNT = int(os.getenv("WEB_CONCURRENCY", "1"))

# =============================================================================
# LightTools session
# =============================================================================

# PID of the running LightTools session to attach to (no default: the session
# is started by the user, not by the worker)
_pid_env = os.getenv("LIGHTTOOLS_PID")
LIGHTTOOLS_PID = int(_pid_env) if _pid_env else None

LIGHTTOOLS_VERSION = os.getenv("LIGHTTOOLS_VERSION", "8.4.0")
LIGHTTOOLS_INSTALL_ROOT = os.getenv(
    "LIGHTTOOLS_INSTALL_ROOT",
    r"C:\Program Files\Optical Research Associates\LightTools",
)
# Relative to "<install root>/LightTools <version>"
LTCOM_ASSEMBLY_PATH = os.path.join("Utilities.NET", "LTCOM64.dll")

# Every DbGet/DbSet/Cmd/GetMeshData call uses 0 for success
DB_SUCCESS = 0

# =============================================================================
# Reconnect backoff
# =============================================================================

_RECONNECT_BACKOFF_BASE = 3.0   # seconds
_RECONNECT_BACKOFF_MAX = 60.0   # seconds

# =============================================================================
# Ray path data keys and properties
# =============================================================================

FORWARD_SIM_KEY_TEMPLATE = (
    "LENS_MANAGER[1].ILLUM_MANAGER[Illumination_Manager]"
    ".RECEIVERS[Receiver_List].SURFACE_RECEIVER[{receiver}]"
    ".FORWARD_SIM_FUNCTION[Forward_Simulation]"
)
DEFAULT_RECEIVER = "PlaneReceiver"

PROP_SHOW_RAY_PATHS = "ShowRayPaths"
PROP_RAY_PATH_COUNT = "RayNumberInVisiblePaths"
PROP_RAY_PATH_POWER = "RayPathPowerAt"
PROP_RAY_PATH_SOURCE = "RayPathSourceNameAt"
PROP_RAY_PATH_FINAL_SURFACE = "RayPathFinalSurfaceAt"
PROP_RAY_PATH_VISIBLE = "RayPathVisibleAt"

# Second index of every RayPath*At accessor
RAY_PATH_SUB_INDEX = 1

# Session commands
CMD_DB_UPDATE_OFF = "DBUpdateOff"
CMD_DB_UPDATE_ON = "DBUpdateOn"
CMD_RECALC_OFF = "RecalcOff"
CMD_RECALC_ON = "RecalcOn"
CMD_RECALC_NOW = "RecalcNow"
CMD_SHOW_ONLY_RAY_PATH_RAYS = "ShowOnlyRayPathRays"
CMD_COPY_TO_CLIPBOARD = "CopyToClipboard"

# =============================================================================
# Power band selection
# =============================================================================

# Filter value matching every source / final surface
WILDCARD = "*"

# Filtered totals at or below this are treated as zero power
POWER_EPSILON = 1e-12
# Percent targets at or below this select nothing; also the slack allowed
# when comparing accumulated power against the absolute threshold
PERCENT_EPSILON = 1e-9

DEFAULT_INTERVALS = "[[100,70],[70,30],[30,0]]"

# =============================================================================
# Settling and capture timing
# =============================================================================

# Wait after ShowRayPaths before reading the ray count
SHOW_RAY_PATHS_SETTLE_S = 0.5
# Wait after RecalcNow for the session's render pipeline
RECALC_SETTLE_S = 2.5
# Wait after ShowOnlyRayPathRays
SHOW_ONLY_SETTLE_S = 1.0
# Pause between bands
BETWEEN_BANDS_PAUSE_S = 1.0

# Clipboard polling after CopyToClipboard
CLIPBOARD_INITIAL_DELAY_S = 0.5
CLIPBOARD_POLL_INTERVAL_S = 0.2
CLIPBOARD_POLL_BACKOFF = 1.5
CLIPBOARD_MAX_ATTEMPTS = 6

# =============================================================================
# Output
# =============================================================================

DEFAULT_OUTPUT_DIR = os.getenv(
    "LIGHTTOOLS_OUTPUT_DIR", r"C:\Temp\LightTools_Output\RayPathCaptures"
)
DEFAULT_IMAGE_BASE_NAME = "RayPathInterval"
DEFAULT_IMAGE_FORMAT = "png"
SUPPORTED_IMAGE_FORMATS = ("png", "jpg", "jpeg", "bmp", "tiff")
RUN_ID_FORMAT = "%Y%m%d_%H%M%S"

INTERROGATION_CSV_HEADER = ("ObjectKey", "PropertyName", "CurrentValue_Or_Status")
KEY_DUMP_TEMP_FILENAME = "temp_keydump.txt"

# =============================================================================
# Logging/output formatting
# =============================================================================

# Maximum characters per raw output log message
_RAW_LOG_MAX_CHARS = 4000

# Fields to summarize (show first N elements + count)
_ARRAY_SUMMARY_FIELDS = {"bands", "member_indices", "rows", "sources", "surfaces"}
_ARRAY_SUMMARY_MAX = 5
