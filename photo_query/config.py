import os
from pathlib import Path

CACHE_DIR = Path(
    os.environ.get("PHOTO_QUERY_CACHE_DIR", Path.home() / ".cache" / "photo-query")
).resolve()

GEO_INDEX_FILE = CACHE_DIR / "geo_index.json"
LABEL_INDEX_FILE = CACHE_DIR / "label_index.json"

PHOTOS_LIBRARY = Path(
    os.environ.get(
        "PHOTO_QUERY_LIBRARY", Path.home() / "Pictures" / "Photos Library.photoslibrary"
    )
)

# -- query parsing --

KNOWN_LOCATIONS = ["Miraggio", "Greece", "Paris", "London", "New York", "Tokyo"]
KNOWN_LOCATIONS += [
    loc.strip()
    for loc in os.environ.get("PHOTO_QUERY_LOCATIONS", "").split(",")
    if loc.strip()
]

# Similarity band for fuzzy place-name correction. The upper bound is
# exclusive so an exact match is never reported as a correction.
FUZZY_MIN_SIMILARITY = 0.75

LOCATION_MAX_WORDS = 4

DEFAULT_TOP_K = 50

# -- geo index --

GEOHASH_PRECISION = 6  # ~1.2km x 0.6km cells
GEOHASH_MIN_PREFIX = 3  # coarsest prefix bucket kept for radius search
GEO_SEARCH_RADIUS_KM = 2.0

# -- label index --

LABEL_MIN_CONFIDENCE = 0.1
MAX_LABELS_PER_PHOTO = 10

# Abort a label build once at least this many items were attempted and
# more than this fraction of them failed.
LABEL_FAILURE_MIN_SAMPLES = 20
LABEL_FAILURE_ABORT_RATIO = 0.5

LABEL_VOCABULARY = [
    "beach", "water", "pool", "sky", "sunset", "mountain", "forest", "tree",
    "flower", "grass", "snow", "landscape", "nature", "city", "architecture",
    "landmark", "street", "car", "food", "drink", "party", "wedding",
    "celebration", "crowd", "person", "face", "dog", "cat", "bird", "horse",
    "boat", "airplane", "room", "interior", "furniture", "document",
    "screenshot", "night", "light", "sport", "concert", "resort", "hotel",
]

CLIP_MODEL = "ViT-B-16"
CLIP_PRETRAINED = "openai"

# -- indexing --

SAVE_INTERVAL = 100  # save state every N items during a build
PROGRESS_INTERVAL = 100  # geo build progress cadence
LABEL_PROGRESS_INTERVAL = 10

# -- video matching --

# Any OpenAI-compatible chat completions API
LLM_BASE_URL = os.environ.get("PHOTO_QUERY_LLM_URL", "https://api.groq.com/openai/v1")
LLM_MODEL = os.environ.get("PHOTO_QUERY_LLM_MODEL", "llama-3.3-70b-versatile")
LLM_API_KEY = os.environ.get("PHOTO_QUERY_LLM_API_KEY", "")
LLM_TIMEOUT = 30

# -- geocoding --

# Offline gazetteer consulted before Nominatim
KNOWN_PLACES = {
    "Paris": (48.8566, 2.3522),
    "London": (51.5074, -0.1278),
    "New York": (40.7128, -74.0060),
    "Tokyo": (35.6812, 139.7671),
}

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
GEOCODER_USER_AGENT = "photo-query/0.1"
GEOCODER_TIMEOUT = 10

# -- service daemon --

SERVICE_PORT = int(os.environ.get("PHOTO_QUERY_PORT", "7830"))
SERVICE_HOST = "127.0.0.1"
SERVICE_PID_FILE = Path("/tmp/mcp-tools/photo-query.pid")
SERVICE_STARTUP_TIMEOUT = 60  # seconds to wait for health check
NICE_VALUE = 15
