"""Internal constants shared across the library."""

ENDPOINT_URL = "wss://telematics-provider-backend.onrender.com/ws/vehicle-location"
USER_AGENT = "pyvtrack"

# ------------------------------------------------------------------
# Report loop cadence (seconds)
# ------------------------------------------------------------------

REPORT_INTERVAL = 30.0
STATUS_POLL_INTERVAL = 5.0

# ------------------------------------------------------------------
# Connection / reconnection
# ------------------------------------------------------------------

CONNECTION_TIMEOUT = 5.0
MIN_RECONNECT_DELAY = 1.0
MAX_RECONNECT_DELAY = 4.0
RECONNECT_GROW_FACTOR = 1.3
MAX_RECONNECT_RETRIES = 3
# A connection must stay open this long before the retry counter resets.
MIN_UPTIME = 5.0

# ------------------------------------------------------------------
# Coordinate bounds (degrees)
# ------------------------------------------------------------------

LATITUDE_MIN = -90.0
LATITUDE_MAX = 90.0
LONGITUDE_MIN = -180.0
LONGITUDE_MAX = 180.0
