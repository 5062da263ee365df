# --------------------------------------------------
# PING INTERVAL
# --------------------------------------------------

BASE_PING_INTERVAL_SECONDS = 60
INITIAL_PING_INTERVAL_SECONDS = 30
FALLBACK_PING_INTERVAL_SECONDS = 120   # used when the remote call fails

MIN_PING_INTERVAL_SECONDS = 20
MAX_PING_INTERVAL_SECONDS = 600

# --------------------------------------------------
# SKIP RULES
# --------------------------------------------------

CRITICAL_BATTERY_LEVEL = 10
BACKGROUND_STATIONARY_MIN_GAP_SECONDS = 300
MAX_AVERAGE_ACCURACY_METERS = 200

# --------------------------------------------------
# INTERVAL MULTIPLIERS
# --------------------------------------------------

LOW_BATTERY_LEVEL = 20
LOW_BATTERY_MULTIPLIER = 2.5
MEDIUM_BATTERY_LEVEL = 50
MEDIUM_BATTERY_MULTIPLIER = 1.5

MOVING_MULTIPLIER = 0.7
STATIONARY_MULTIPLIER = 1.3
BACKGROUND_MULTIPLIER = 1.8

FAR_VENUE_DISTANCE_METERS = 200
FAR_VENUE_MULTIPLIER = 1.4

POOR_ACCURACY_METERS = 100
POOR_ACCURACY_MULTIPLIER = 1.2

# --------------------------------------------------
# MOVEMENT / LOCATION
# --------------------------------------------------

MOVING_SPEED_KMH = 1.0
MIN_SPEED_SAMPLE_SECONDS = 60
DEFAULT_AVERAGE_ACCURACY_METERS = 50
ACCURACY_WINDOW_SIZE = 10
LOCATION_MAX_AGE_SECONDS = 30

JITTER_CACHE_SECONDS = 20
JITTER_ACCURACY_DELTA_METERS = 50
DISTANCE_HISTORY_SECONDS = 300
VENUE_RADIUS_K_FACTOR = 1.2
REFIX_ACCURACY_METERS = 150

# --------------------------------------------------
# SESSIONS
# --------------------------------------------------

VENUE_REMOVAL_GRACE_SECONDS = 30
PING_STATS_RESET_SECONDS = 7 * 24 * 60 * 60

# --------------------------------------------------
# BACKGROUND PROCESSING
# --------------------------------------------------

BACKGROUND_MAX_BATCH_SIZE = 10
BACKGROUND_MAX_PING_INTERVAL_SECONDS = 300
BACKGROUND_MIN_ACCURACY_METERS = 200
BACKGROUND_PING_GAP_OPTIMIZED_SECONDS = 120
BACKGROUND_PING_GAP_SECONDS = 60
BACKGROUND_DISTANCE_INTERVAL_METERS = 25
BACKGROUND_LOCATION_BASE_INTERVAL_MS = 60_000
BATCHED_LOCATIONS_LIMIT = 20
DEFAULT_BATTERY_LEVEL = 50

# --------------------------------------------------
# NOTIFICATIONS / HOOKED HOURS
# --------------------------------------------------

PROXIMITY_ALERT_METERS = 200
TRANSITION_NOTICE_MINUTES = 5
STATUS_MONITOR_INTERVAL_SECONDS = 60
RECENT_SCAN_WINDOW_SECONDS = 30 * 60
STORE_RETENTION_SECONDS = 7 * 24 * 60 * 60
QR_SCAN_HISTORY_LIMIT = 50
VENUE_HISTORY_LIMIT = 100
