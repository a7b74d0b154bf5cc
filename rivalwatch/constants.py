"""Centralized application constants: single source of truth for hardcoded values."""

# --- Provider rate limiting ---
PROVIDER_MIN_INTERVAL = 5.0  # seconds between provider call starts

# --- BrightData endpoints ---
BRIGHTDATA_SCRAPE_PATH = "/datasets/v3/scrape"
BRIGHTDATA_PROGRESS_PATH = "/datasets/v3/progress/{snapshot_id}"
BRIGHTDATA_SNAPSHOT_PATH = "/datasets/v3/snapshot/{snapshot_id}"

# --- HTTP Client ---
HTTP_TOTAL_TIMEOUT = 300  # seconds
HTTP_CONNECT_TIMEOUT = 10  # seconds
COMPANY_SCRAPE_TIMEOUT = 180  # seconds
PROFILE_SCRAPE_TIMEOUT = 150  # seconds (profiles take ~90s)
POSTS_SCRAPE_TIMEOUT = 300  # seconds (posts discovery is slow)
SNAPSHOT_STATUS_TIMEOUT = 30  # seconds

# --- Orchestrator ---
SCRAPE_MAX_ATTEMPTS = 2
SCRAPE_RETRY_DELAY = 5.0  # seconds, multiplied by attempt number
MAX_POSTS_PER_BATCH = 20

# --- Materialization ---
PLACEHOLDER_IMPRESSIONS = 1000
POSTS_SCRAPE_MODEL_VERSION = "brightdata-posts-scrape-v1"
SNAPSHOT_CHECKER_MODEL_VERSION = "brightdata-snapshot-checker-v1"

# --- Snapshot checker ---
SNAPSHOT_CHECK_INTERVAL = 30  # seconds
SNAPSHOT_CHECK_DELAY = 0.5  # seconds between entries in one sweep
SNAPSHOT_MAX_AGE = 30 * 60  # seconds
SNAPSHOT_MAX_ATTEMPTS = 60
SNAPSHOT_PROGRESS_FLOOR = 30
SNAPSHOT_PROGRESS_CEILING = 80

# --- Job recovery ---
STUCK_JOB_THRESHOLD = 10 * 60  # seconds
HEALTH_CHECK_INTERVAL_MINUTES = 5
JOB_RETENTION_DAYS = 7

# --- Worker ---
ARQ_QUEUE_NAME = "rivalwatch:scrape"
ARQ_MAX_JOBS = 10
ARQ_JOB_TIMEOUT = 900  # seconds (posts call + retries)
ARQ_MAX_TRIES = 3
ARQ_RETRY_BACKOFF = 5  # seconds, doubled per try: 5s, 10s, 20s
POSTS_SCRAPE_DELAY = 5  # seconds after a profile scrape
RETRY_SNAPSHOT_DELAY = 60  # seconds
RETRY_SNAPSHOT_MAX_ATTEMPTS = 3

# --- Live events ---
EVENT_CHANNEL_PREFIX = "company:"
EVENT_SCRAPE_STARTED = "scrape:started"
EVENT_SCRAPE_PROGRESS = "scrape:progress"
EVENT_SCRAPE_COMPLETED = "scrape:completed"
EVENT_SCRAPE_FAILED = "scrape:failed"
EVENT_SCRAPE_SCHEDULED = "scrape:scheduled"
EVENT_PROFILE_READY = "competitor:profileReady"
EVENT_SYNC_FAILED = "competitor:syncFailed"

# --- Pagination ---
SCRAPE_JOBS_PER_PAGE = 50
