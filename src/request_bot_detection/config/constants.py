"""
Constants for bot detection thresholds, route parameters and storage.
"""

# =============================================================================
# Frequency Analysis
# =============================================================================

# Trailing window of prior requests from the same source IP (seconds)
ANALYSIS_WINDOW_SECONDS = 3600

# Minimum requests in the window (current request included) before the
# frequency analyzer produces a verdict
MIN_REQUESTS_FOR_ANALYSIS = 5

# Baseline interval for sources without a stored average (seconds)
DEFAULT_AVG_REQUEST_INTERVAL = 5.0

# Fraction of the baseline interval under which traffic is considered bursty
SUSPICIOUS_FREQUENCY_MULTIPLIER = 0.3

# Rule (a): more than 30 req/min with an average interval below 2s
HIGH_RATE_REQUESTS_PER_MINUTE = 30.0
HIGH_RATE_MAX_INTERVAL = 2.0

# Rule (b): average interval of 1.5s or less (40+ req/min)
BURST_MAX_INTERVAL = 1.5

# Rule (c): minimum rate for the baseline-relative rule
BASELINE_MIN_REQUESTS_PER_MINUTE = 20.0

# =============================================================================
# User-Agent Analysis
# =============================================================================

# Rate above which a request without an identified browser is suspicious
NO_BROWSER_REQUESTS_PER_MINUTE = 20.0

# Old/budget device signatures frequently spoofed by scraping farms.
# Device names include the marketing name and the Samsung model code since
# UA parsers report one or the other.
SUSPICIOUS_DEVICE_PATTERNS = {
    "android": {
        "versions": ["4.4", "4.3", "4.2", "4.1", "4.0"],
        "devices": [
            "Galaxy Note 4",
            "Galaxy S4",
            "Galaxy S3",
            "SM-N910",  # Galaxy Note 4
            "GT-I9500",  # Galaxy S4
            "GT-I9505",  # Galaxy S4 LTE
            "GT-I9300",  # Galaxy S3
        ],
        "max_requests_per_minute": 10,
    },
}

# Browser families reported by parsers when nothing was identified
UNIDENTIFIED_BROWSER_FAMILIES = frozenset(["", "other", "unknown"])

# =============================================================================
# Parameter Analysis
# =============================================================================

# Name/value patterns typical of bot-generated parameters
SUSPICIOUS_PARAMETER_PATTERNS = [
    r"^[a-z0-9]{32,}$",  # Long random tokens
    r"^[0-9]{10,}$",  # Long numeric strings
    r"^(test|debug|admin|hack)",  # Probing names
]

# Shannon entropy (bits/char) above which a value looks machine-generated
ENTROPY_THRESHOLD = 4.5

# Values must be longer than this to be entropy-checked
ENTROPY_MIN_LENGTH = 10

# =============================================================================
# Route Parameter Whitelist
# =============================================================================

# Parameters accepted on every route
COMMON_PARAMETERS = (
    # Pagination
    "page",
    "per_page",
    "limit",
    "offset",
    # Sorting
    "sort",
    "order",
    "order_by",
    "sort_by",
    "direction",
    # Filtering
    "search",
    "q",
    "query",
    "filter",
    "filters",
    # Format
    "format",
    "type",
    # Locale
    "lang",
    "locale",
    "language",
    # Authentication
    "token",
    "api_key",
    # CSRF / method spoofing
    "_token",
    "_method",
    # Common IDs
    "id",
    "uuid",
    "slug",
)

# Extra parameters for routes that cannot be derived from declarations
ROUTE_PARAMETER_OVERRIDES = {
    "dashboard/requests-log": [
        "is_bot",
        "include_user_agents",
        "exclude_user_agents",
        "include_ips",
        "exclude_ips",
        "date_from",
        "date_to",
        "exclude_connected_users_ips",
    ],
    "projects": [],
    "": [],  # Home page
    "dashboard/api/creations": ["with_drafts", "only_published"],
    "dashboard/api/technologies": ["type", "with_experience"],
    "dashboard/api/experiences": ["type", "current"],
}

# =============================================================================
# Engine
# =============================================================================

SKIP_REASON_AUTHENTICATED = "Authenticated user"
SKIP_REASON_MANUALLY_FLAGGED = "Manually flagged - skipping automatic analysis"
MANUAL_FLAG_REASON = "Manually flagged as bot from the dashboard"

# Batch claims older than this can be taken over by another run (seconds)
CLAIM_TIMEOUT_SECONDS = 600

# Default stale window for re-analysis (hours)
DEFAULT_STALE_HOURS = 24

# Default batch size for scheduled runs
DEFAULT_BATCH_SIZE = 100

# Country code used when the source's country is unknown
UNKNOWN_COUNTRY_CODE = "XX"

# SQLite table names
TABLE_LOGGED_REQUESTS = "logged_requests"
TABLE_IP_ADDRESS_METADATA = "ip_address_metadata"
