# ===== IMPORTS & DEPENDENCIES =====
import logging
import json
import re
import aiohttp
from typing import Any, Dict, List, Optional

from boardgame_hype.core.base_client import BaseWebClient
from boardgame_hype.core.errors import ClientInputError, NotFound, ParseError
from boardgame_hype.models.game import CanonicalGame, new_canonical_game
from boardgame_hype.config import BGG_GAME_PAGE_URL, SCRAPE_HEADERS, CACHE_DIR, THING_CACHE_TTL
from boardgame_hype.utils.game_utils import to_int, to_float, clean_description, unique

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

CATALOG_URL_REGEX = re.compile(r'boardgamegeek\.com/boardgame(?:expansion)?/(\d+)')
# The relay accepts any URL carrying the path segment, with or without the host
GAME_PATH_REGEX = re.compile(r'boardgame(?:expansion)?/(\d+)')
PRELOAD_REGEX = re.compile(r'GEEK\.geekitemPreload\s*=\s*(\{.+?\});\s*$', re.MULTILINE)

# ===== UTILITY FUNCTIONS =====
def is_catalog_url(text: str) -> bool:
    """True for a full boardgamegeek.com game or expansion page URL."""
    return bool(text) and CATALOG_URL_REGEX.search(text) is not None


def extract_catalog_id(url: str) -> int:
    """Pulls the numeric game id out of a '.../boardgame/<id>' or '.../boardgameexpansion/<id>' URL."""
    if not url:
        raise ClientInputError("Missing url parameter")
    match = GAME_PATH_REGEX.search(url)
    if not match:
        raise ClientInputError("Invalid BGG URL")
    return int(match.group(1))


def expand_player_ranges(ranges: Any) -> List[int]:
    """Expands inclusive [{'min': 2, 'max': 4}] tiers into [2, 3, 4]."""
    counts = []
    for player_range in ranges or []:
        if not isinstance(player_range, dict):
            continue
        low = to_int(player_range.get('min'))
        high = to_int(player_range.get('max'))
        counts.extend(range(low, high + 1))
    return unique(count for count in counts if count > 0)


def _link_names(links: Dict[str, Any], link_type: str) -> List[str]:
    return [link['name'] for link in links.get(link_type) or [] if isinstance(link, dict) and link.get('name')]

# ===== PAGE PARSING =====
def extract_preload(html: str) -> Dict[str, Any]:
    """
    Finds the `GEEK.geekitemPreload = {...};` assignment in a game page and decodes it.
    A missing assignment means the layout changed or the request was blocked.
    """
    match = PRELOAD_REGEX.search(html or '')
    if not match:
        raise ParseError("Could not parse game data from BGG page")
    try:
        preload = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in BGG page preload: {e}") from e
    if not isinstance(preload, dict):
        raise ParseError("Unexpected BGG page preload shape")
    return preload


def parse_game_page(html: str, fallback_id: int = 0) -> CanonicalGame:
    """Maps the page's preload item to a CanonicalGame. A preload without an item is NotFound."""
    preload = extract_preload(html)
    item = preload.get('item')
    if not item or not isinstance(item, dict):
        raise NotFound("No game data found")

    images = item.get('images') or {}
    stats = item.get('stats') or {}
    links = item.get('links') or {}
    player_poll = (item.get('polls') or {}).get('userplayers') or {}

    best = expand_player_ranges(player_poll.get('best'))
    recommended = expand_player_ranges(player_poll.get('recommended'))

    return new_canonical_game(
        to_int(item.get('objectid')) or fallback_id,
        item.get('name') or 'Unknown',
        thumbnail=images.get('square200') or images.get('thumb') or '',
        image=images.get('original') or item.get('imageurl') or '',
        description=clean_description(item.get('description') or ''),
        year_published=to_int(item.get('yearpublished')),
        min_players=to_int(item.get('minplayers')),
        max_players=to_int(item.get('maxplayers')),
        playing_time=to_int(item.get('maxplaytime') or item.get('minplaytime')),
        min_play_time=to_int(item.get('minplaytime')),
        max_play_time=to_int(item.get('maxplaytime')),
        bgg_score=to_float(stats.get('average')),
        average_rating=to_float(stats.get('baverage')),
        weight=to_float(stats.get('avgweight')),
        best_player_count=best,
        recommended_player_count=recommended,
        bgg_type=_link_names(links, 'boardgamesubdomain'),
        categories=_link_names(links, 'boardgamecategory'),
        mechanics=_link_names(links, 'boardgamemechanic'),
    )

# ===== CORE BUSINESS LOGIC =====
class GeekPageScraper(BaseWebClient):
    """Reads game details straight from a BGG game page. No API token is needed."""

    def __init__(self, session: aiohttp.ClientSession, cache_dir: Optional[str] = CACHE_DIR, cache_ttl: int = THING_CACHE_TTL):
        super().__init__(session=session, cache_dir=cache_dir, cache_ttl=cache_ttl)

    async def fetch_game(self, url: str) -> CanonicalGame:
        """Fetches and parses the page for any game or expansion URL."""
        game_id = extract_catalog_id(url)
        page_url = BGG_GAME_PAGE_URL.format(id=game_id)

        html = await self._fetch_text(page_url, headers=self._build_headers(SCRAPE_HEADERS, with_token=False))
        game = parse_game_page(html, fallback_id=game_id)
        logger.info(f"✅ [{self.__class__.__name__}] Scraped '{game['name']}' (ID: {game['id']}).")
        return game

    async def fetch_game_by_id(self, game_id: int) -> CanonicalGame:
        return await self.fetch_game(BGG_GAME_PAGE_URL.format(id=game_id))
