"""Internal constants shared across the library."""

EARTH_RADIUS_METERS = 6_371_000.0

# ------------------------------------------------------------------
# Reference point and radius
# ------------------------------------------------------------------

TARGET_LATITUDE = 40.742352
TARGET_LONGITUDE = -74.006210
ALLOWED_RADIUS_METERS = 100.0

# ------------------------------------------------------------------
# Reporter timing (seconds)
# ------------------------------------------------------------------

REPORT_INTERVAL = 30.0
LOCATION_TIMEOUT = 15.0
LOCATION_MAXIMUM_AGE = 30.0

# ------------------------------------------------------------------
# Store
# ------------------------------------------------------------------

STATUS_KEY = "jasOfficeStatus"
MQTT_TOPIC_PREFIX = "geopresence"
USER_AGENT = "geopresence/1"
