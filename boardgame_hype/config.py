# ===== CONFIGURATION & CONSTANTS =====
import os

# --- General Settings ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CACHE_DIR = os.getenv("CACHE_DIR", "cache")
DATABASE_PATH = os.getenv("DATABASE_PATH", "data/collection.db")

# --- Catalog (BoardGameGeek) ---
BGG_API_TOKEN = os.getenv("BGG_API_TOKEN", "")
BGG_API_BASE = "https://boardgamegeek.com/xmlapi2"
BGG_SEARCH_URL = BGG_API_BASE + "/search?query={query}&type=boardgame"
BGG_THING_URL = BGG_API_BASE + "/thing?id={id}&stats=1"
BGG_COLLECTION_URL = BGG_API_BASE + "/collection?username={username}&stats=1&subtype=boardgame"
BGG_GAME_PAGE_URL = "https://boardgamegeek.com/boardgame/{id}"

# Cache lifetimes in seconds, matching what the relay advertises downstream
SEARCH_CACHE_TTL = 300
THING_CACHE_TTL = 300
COLLECTION_CACHE_TTL = 60

# --- Web Scraping & API Headers ---
API_USER_AGENT = "BoardGameHype/1.0"
SCRAPE_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (compatible; BoardGameHype/1.0)',
    'Accept': 'text/html',
}
COMMON_HEADERS = {
    'User-Agent': API_USER_AGENT,
    'Accept': 'application/xml, text/xml, */*',
}
REQUEST_TIMEOUT = 25

# --- Eventually-consistent collection export ---
# The collection endpoint answers 202 while an export is being prepared.
PROCESSING_STATUS = 202
RELAY_MAX_ATTEMPTS = 5
RELAY_RETRY_DELAY = 2.0
CLIENT_MAX_ATTEMPTS = 6
CLIENT_RETRY_DELAY = 3.0

# --- Relay server ---
RELAY_HOST = os.getenv("RELAY_HOST", "127.0.0.1")
RELAY_PORT = int(os.getenv("RELAY_PORT", "8080"))
RELAY_BASE_URL = os.getenv("RELAY_BASE_URL", "")
# Relay endpoints, relative to RELAY_BASE_URL
RELAY_SEARCH_PATH = "/api/bgg/search?q={query}"
RELAY_THING_PATH = "/api/bgg/thing?id={id}"
RELAY_COLLECTION_PATH = "/api/bgg/collection?username={username}"

# --- Document store ---
MAX_BATCH_OPERATIONS = 500

# --- Enrichment backfill ---
ENRICH_WAVE_SIZE = 3
ENRICH_WAVE_PAUSE = 0.5

# --- Player-count poll ---
BEST_PLAYER_VOTE_RATIO = 0.75

# --- Hype score ---
# Half-life is ln(2) / HYPE_DECAY_LAMBDA, roughly 35 days.
HYPE_DECAY_LAMBDA = 0.02
HYPE_SCORE_FLOOR = 0.0
HYPE_SCORE_CEILING = 5.0
MS_PER_DAY = 1000 * 60 * 60 * 24

# Ascending upper bounds; a score below the bound gets that tier.
HYPE_TIERS = [
    (1.0, "Warm", "#78909C"),
    (2.0, "Hot", "#FFA726"),
    (3.0, "Fire", "#FF7043"),
]
HYPE_COLD = ("Cold", "var(--text-hint)")
HYPE_BLAZING = ("Blazing", "#E53935")

# --- Profiles ---
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 24
RESERVED_USERNAMES = ["search", "api", "settings", "login", "admin"]
