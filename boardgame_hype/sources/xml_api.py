# ===== IMPORTS & DEPENDENCIES =====
import logging
import asyncio
import aiohttp
import xml.etree.ElementTree as ET
from typing import List, Optional
from urllib.parse import quote

from boardgame_hype.core.base_client import BaseWebClient
from boardgame_hype.core.errors import ClientInputError, NotFound, ParseError, UpstreamError
from boardgame_hype.core.fetch_policy import CLIENT_POLICY, RetryPolicy, fetch_until_ready
from boardgame_hype.models.game import CanonicalGame, SearchResult, new_canonical_game
from boardgame_hype.config import (
    BGG_SEARCH_URL, BGG_THING_URL, BGG_COLLECTION_URL, BGG_API_TOKEN,
    BEST_PLAYER_VOTE_RATIO, COMMON_HEADERS, CACHE_DIR, SEARCH_CACHE_TTL,
    RELAY_BASE_URL, RELAY_SEARCH_PATH, RELAY_THING_PATH, RELAY_COLLECTION_PATH
)
from boardgame_hype.utils.game_utils import to_int, to_float, strip_html, unique

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# ===== XML HELPERS =====
def _parse_document(xml_text: str) -> ET.Element:
    """Parses an XML API response, turning syntax errors and error documents into ParseError."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ParseError(f"Failed to parse BGG XML: {e}") from e

    if root.tag == 'errors' or root.tag == 'error':
        message = ' '.join(t.strip() for t in root.itertext() if t.strip()) or 'unknown error'
        raise ParseError(f"BGG returned an error document: {message}")
    if root.tag != 'items':
        raise ParseError(f"Unexpected response from BGG: root element <{root.tag}>")
    return root


def _attr(element: Optional[ET.Element], path: str, attribute: str = 'value') -> str:
    """Reads `attribute` of the first element matching `path`, or '' when absent."""
    if element is None:
        return ''
    found = element.find(path)
    if found is None:
        return ''
    return found.get(attribute) or ''


def _text(element: Optional[ET.Element], path: str) -> str:
    if element is None:
        return ''
    found = element.find(path)
    if found is None or found.text is None:
        return ''
    return found.text.strip()


def _family_types(item: ET.Element) -> List[str]:
    """Family ranks ('Strategy Game Rank') become type tags ('Strategy Game')."""
    types = []
    for rank in item.iter('rank'):
        if rank.get('type') != 'family':
            continue
        name = rank.get('friendlyname') or ''
        if name.endswith(' Rank'):
            name = name[:-len(' Rank')]
        if name:
            types.append(name)
    return types


def _links(item: ET.Element, link_type: str) -> List[str]:
    return [link.get('value') for link in item.iter('link') if link.get('type') == link_type and link.get('value')]


def _best_votes(results: ET.Element) -> int:
    return to_int(_attr(results, "result[@value='Best']", 'numvotes'))


def best_player_counts(item: ET.Element, ratio: float = BEST_PLAYER_VOTE_RATIO) -> List[int]:
    """
    Reads the 'suggested_numplayers' poll. Every player count whose "Best" votes reach
    `ratio` of the top "Best" vote count is kept, so close runners-up are included.
    """
    groups = item.findall("poll[@name='suggested_numplayers']/results")
    max_best_votes = max((_best_votes(results) for results in groups), default=0)
    if max_best_votes <= 0:
        return []

    counts = []
    for results in groups:
        if _best_votes(results) >= max_best_votes * ratio:
            count = to_int(results.get('numplayers'))
            if count:
                counts.append(count)
    return unique(counts)


def recommended_player_counts(best: List[int]) -> List[int]:
    """The detail endpoint carries no separate recommendation, so the best counts stand in for it."""
    return list(best)

# ===== RESPONSE PARSERS =====
def parse_search_results(xml_text: str) -> List[SearchResult]:
    """Parses a search response. Zero matches is a valid empty list; newest games come first."""
    root = _parse_document(xml_text)
    results: List[SearchResult] = []
    for item in root.findall('item'):
        game_id = to_int(item.get('id'))
        if game_id <= 0:
            continue
        name = _attr(item, "name[@type='primary']") or _attr(item, 'name') or 'Unknown'
        results.append({
            'id': game_id,
            'name': name,
            'year_published': to_int(_attr(item, 'yearpublished')),
        })
    # sort() is stable, so equal years keep the response order
    results.sort(key=lambda r: r['year_published'], reverse=True)
    return results


def parse_thing(xml_text: str) -> CanonicalGame:
    """Parses a full item-detail response into a CanonicalGame."""
    root = _parse_document(xml_text)
    item = root.find('item')
    if item is None:
        raise NotFound("No game data found")

    ratings = item.find('statistics/ratings')
    best = best_player_counts(item)

    return new_canonical_game(
        to_int(item.get('id')),
        _attr(item, "name[@type='primary']") or 'Unknown',
        thumbnail=_text(item, 'thumbnail'),
        image=_text(item, 'image'),
        description=strip_html(_text(item, 'description')),
        year_published=to_int(_attr(item, 'yearpublished')),
        min_players=to_int(_attr(item, 'minplayers')),
        max_players=to_int(_attr(item, 'maxplayers')),
        playing_time=to_int(_attr(item, 'playingtime')),
        min_play_time=to_int(_attr(item, 'minplaytime')),
        max_play_time=to_int(_attr(item, 'maxplaytime')),
        bgg_score=to_float(_attr(ratings, 'average')),
        average_rating=to_float(_attr(ratings, 'bayesaverage')),
        weight=to_float(_attr(ratings, 'averageweight')),
        best_player_count=best,
        recommended_player_count=recommended_player_counts(best),
        bgg_type=_family_types(item),
        categories=_links(item, 'boardgamecategory'),
        mechanics=_links(item, 'boardgamemechanic'),
    )


def parse_owned_collection(xml_text: str) -> List[CanonicalGame]:
    """
    Parses a collection response, keeping only owned games. Poll data is not part of
    this shape, so player-count recommendations stay empty.
    """
    root = _parse_document(xml_text)
    items = root.findall('item')
    if not items and root.get('totalitems') != '0':
        raise ParseError("Unexpected response from BGG: no items in collection document")

    games: List[CanonicalGame] = []
    for item in items:
        if _attr(item, 'status', 'own') != '1':
            continue
        game_id = to_int(item.get('objectid'))
        if game_id <= 0:
            continue

        stats = item.find('stats')
        playing_time = to_int(stats.get('playingtime') if stats is not None else None)
        games.append(new_canonical_game(
            game_id,
            _text(item, 'name') or 'Unknown',
            thumbnail=_text(item, 'thumbnail'),
            image=_text(item, 'image'),
            year_published=to_int(_text(item, 'yearpublished')),
            min_players=to_int(stats.get('minplayers') if stats is not None else None),
            max_players=to_int(stats.get('maxplayers') if stats is not None else None),
            playing_time=playing_time,
            min_play_time=playing_time,
            max_play_time=playing_time,
            bgg_score=to_float(_attr(stats, 'rating/average')),
            weight=to_float(_attr(stats, 'rating/averageweight')),
            bgg_type=_family_types(item),
        ))

    logger.info(f"[parse_owned_collection] Kept {len(games)} owned games out of {len(items)} collection items.")
    return games

# ===== CORE BUSINESS LOGIC =====
class CatalogApiClient(BaseWebClient):
    """
    Client for the BGG XML API: search, item details and a user's owned collection.
    With a `relay_base_url` every call goes through the relay, which holds the API token
    and runs its own shorter poll in front of this client's one.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        token: str = BGG_API_TOKEN,
        cache_dir: Optional[str] = CACHE_DIR,
        policy: RetryPolicy = CLIENT_POLICY,
        sleep=asyncio.sleep,
        relay_base_url: str = RELAY_BASE_URL
    ):
        super().__init__(session=session, cache_dir=cache_dir, cache_ttl=SEARCH_CACHE_TTL, token=token)
        self._policy = policy
        self._sleep = sleep
        self._relay_base_url = (relay_base_url or '').rstrip('/')

    def _url(self, direct_template: str, relay_path: str, **params) -> str:
        if self._relay_base_url:
            return self._relay_base_url + relay_path.format(**params)
        return direct_template.format(**params)

    def _require_token(self) -> None:
        if not self._token and not self._relay_base_url:
            raise UpstreamError("BGG API token not configured", status=503)

    async def search(self, query: str) -> List[SearchResult]:
        if not query or not query.strip():
            raise ClientInputError("Missing query parameter")
        self._require_token()

        url = self._url(BGG_SEARCH_URL, RELAY_SEARCH_PATH, query=quote(query.strip()))
        xml_text = await self._fetch_text(url, headers=self._build_headers())
        results = parse_search_results(xml_text)
        logger.info(f"✅ [{self.__class__.__name__}] Found {len(results)} search results for '{query}'.")
        return results

    async def get_game(self, game_id: int) -> CanonicalGame:
        if to_int(game_id) <= 0:
            raise ClientInputError("Missing id parameter")
        self._require_token()

        url = self._url(BGG_THING_URL, RELAY_THING_PATH, id=game_id)
        xml_text = await self._fetch_text(url, headers=self._build_headers())
        return parse_thing(xml_text)

    async def fetch_owned_collection(self, username: str) -> List[CanonicalGame]:
        """Fetches a user's owned games, polling while BGG prepares the export."""
        if not username or not username.strip():
            raise ClientInputError("Missing username parameter")

        url = self._url(BGG_COLLECTION_URL, RELAY_COLLECTION_PATH, username=quote(username.strip()))
        headers = self._build_headers(COMMON_HEADERS)
        logger.info(f"➡️ [{self.__class__.__name__}] Fetching collection for '{username}'")

        xml_text = await fetch_until_ready(
            lambda: self._request(url, headers=headers),
            self._policy,
            sleep=self._sleep,
            label=f"collection of '{username}'"
        )
        return parse_owned_collection(xml_text)
