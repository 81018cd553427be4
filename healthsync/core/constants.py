"""
Constants for the healthsync upload-and-process pipeline.
"""

KIB = 1024
MIB = 1024 * 1024

# File validation constants
DEFAULT_MAX_UPLOAD_MB = 500
MIN_FILE_SIZE_BYTES = 1

# Chunk planning constants
SMALL_FILE_THRESHOLD = 10 * MIB
LARGE_FILE_THRESHOLD = 100 * MIB
SMALL_FILE_TARGET_CHUNKS = 20
LARGE_FILE_TARGET_CHUNKS = 50
MIN_CHUNK_SIZE = 64 * KIB
STANDARD_CHUNK_SIZE = 1 * MIB
MAX_CHUNK_SIZE = 10 * MIB

# Chunk transmission constants
DEFAULT_MAX_PARALLEL_UPLOADS = 3
DEFAULT_CHUNK_MAX_RETRIES = 3
DEFAULT_CHUNK_TIMEOUT = 30.0
DEFAULT_CHUNK_BASE_BACKOFF = 1.0
DEFAULT_CHUNK_BACKOFF_MULTIPLIER = 2.0
DEFAULT_CHUNK_MAX_BACKOFF = 10.0
NON_RETRYABLE_STATUSES = (413, 401, 403)

# Processing poll constants
DEFAULT_POLL_MAX_ATTEMPTS = 60
DEFAULT_POLL_INITIAL_BACKOFF = 2.0
DEFAULT_POLL_BACKOFF_MULTIPLIER = 1.5
DEFAULT_POLL_MAX_BACKOFF = 30.0
WAITING_FOR_PROGRESS_MESSAGE = "Waiting for processing progress..."
STILL_RUNNING_MESSAGE = (
	"Processing is taking longer than expected and may still be running. "
	"Check back later for results."
)

# Endpoint constants
UPLOAD_CHUNK_PATH = "/api/upload-chunk"
PROCESS_PATH = "/api/process"
PROCESS_STATUS_PATH = "/api/process/status"
UPLOAD_URL_PATH = "/api/upload-url"

# Server constants
DEFAULT_MAX_CHUNK_MB = 16
DEFAULT_UPLOAD_URL_TTL = 900
STORAGE_DIR = "./storage"

# Status constants
STATUS_RECEIVING = "receiving"
STATUS_ASSEMBLED = "assembled"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"

# Validation constants
MAX_FILENAME_LENGTH = 255
