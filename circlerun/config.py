"""Environment-driven settings for the loop engine and its HTTP surface."""
import os

API_VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Directions provider ---
MAPBOX_ACCESS_TOKEN = os.getenv("MAPBOX_ACCESS_TOKEN", "")
MAPBOX_BASE_URL = os.getenv("MAPBOX_BASE_URL", "https://api.mapbox.com")
DIRECTIONS_PROFILE = os.getenv("DIRECTIONS_PROFILE", "walking")
# Mapbox only accepts a handful of road classes here; "ferry" is the useful one
DIRECTIONS_EXCLUDE = [c for c in os.getenv("DIRECTIONS_EXCLUDE", "").split(",") if c.strip()]
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30.0"))

# --- Search loop ---
RETRY_DELAY = float(os.getenv("RETRY_DELAY", "2.0"))
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "5"))
ERROR_MARGIN = float(os.getenv("ERROR_MARGIN", "0.01"))
NUM_POINTS = int(os.getenv("NUM_POINTS", "12"))

# --- Side artifacts ---
FAVORITES_PATH = os.getenv("FAVORITES_PATH", "favorites.json")
GPX_EXPORT_DIR = os.getenv("GPX_EXPORT_DIR", "exports")

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
