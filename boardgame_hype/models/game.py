# ===== TYPES & INTERFACES =====

from typing import TypedDict, List, Optional, Literal

class CanonicalGame(TypedDict):
    """
    The unified shape every Catalog adapter (CSV export, XML API, page scrape) produces.
    Numeric fields default to 0 and list fields to [] so nothing downstream ever sees None.

    Attributes:
        id (int): The Catalog's stable identifier.
        name (str): Display name.
        thumbnail (str): Small cover image URL, '' when unknown.
        image (str): Full-size cover image URL, '' when unknown.
        description (str): Plain-text description with markup stripped.
        year_published (int): Publication year, 0 when unknown.
        min_players / max_players (int): Box player range.
        playing_time / min_play_time / max_play_time (int): Minutes.
        bgg_score (float): Raw average user rating, 0 when unrated.
        average_rating (float): Bayesian-adjusted average.
        weight (float): Complexity rating, 0-5.
        best_player_count (List[int]): Player counts the community rates "best".
        recommended_player_count (List[int]): Player counts rated at least "recommended".
        bgg_type (List[str]): Family / subdomain tags (e.g. 'Strategy').
        categories (List[str]): Theme tags.
        mechanics (List[str]): Mechanism tags.
    """
    id: int
    name: str
    thumbnail: str
    image: str
    description: str
    year_published: int
    min_players: int
    max_players: int
    playing_time: int
    min_play_time: int
    max_play_time: int
    bgg_score: float
    average_rating: float
    weight: float
    best_player_count: List[int]
    recommended_player_count: List[int]
    bgg_type: List[str]
    categories: List[str]
    mechanics: List[str]


class SearchResult(TypedDict):
    id: int
    name: str
    year_published: int


class HypeEvent(TypedDict):
    """An up (+1) or down (-1) interest signal at a point in time (ms since epoch)."""
    direction: Literal[1, -1]
    timestamp: int


class CollectionEntry(TypedDict, total=False):
    """
    A CanonicalGame stored in a user's collection, plus the fields only the user edits.
    Stored under the stringified Catalog id. `id` is the document key and is not persisted.
    """
    id: str
    bgg_id: int

    # Catalog-owned fields
    name: str
    thumbnail: str
    image: str
    description: str
    year_published: int
    min_players: int
    max_players: int
    playing_time: int
    bgg_score: float
    weight: float
    best_player_count: List[int]
    recommended_player_count: List[int]
    bgg_type: List[str]
    categories: List[str]
    mechanics: List[str]

    # User-owned fields
    labels: List[str]
    play_dates: List[str]
    personal_note: str
    hype_events: List[HypeEvent]
    added_at: int
    hidden: bool


class ImportProgress(TypedDict, total=False):
    total: int
    done: int
    phase: Literal['importing', 'enriching', 'done']
    current: Optional[str]


class UserProfile(TypedDict):
    username: str
    is_public: bool


# ===== FIELD OWNERSHIP =====
# Fields an entry keeps from the Catalog record when it is first created.
ENTRY_CATALOG_FIELDS = (
    'name', 'thumbnail', 'image', 'description', 'year_published',
    'bgg_score', 'weight', 'min_players', 'max_players',
    'best_player_count', 'recommended_player_count', 'playing_time',
    'bgg_type', 'categories', 'mechanics',
)

# Overwritten when a CSV import (or collection refresh) meets an existing entry.
IMPORT_UPDATE_FIELDS = (
    'name', 'bgg_score', 'weight', 'min_players', 'max_players',
    'best_player_count', 'recommended_player_count', 'playing_time',
    'year_published',
)

# Overwritten by the thumbnail/type enrichment backfill.
ENRICH_UPDATE_FIELDS = (
    'thumbnail', 'image', 'description', 'bgg_type', 'categories', 'mechanics',
    'bgg_score', 'weight', 'best_player_count', 'recommended_player_count',
)

SORT_KEYS = ('name', 'bgg_score', 'weight', 'hype_score', 'added_at')


def new_canonical_game(game_id: int, name: str = 'Unknown', **fields) -> CanonicalGame:
    """Builds a CanonicalGame with every field defaulted, then applies `fields`."""
    game: CanonicalGame = {
        'id': game_id,
        'name': name,
        'thumbnail': '',
        'image': '',
        'description': '',
        'year_published': 0,
        'min_players': 0,
        'max_players': 0,
        'playing_time': 0,
        'min_play_time': 0,
        'max_play_time': 0,
        'bgg_score': 0.0,
        'average_rating': 0.0,
        'weight': 0.0,
        'best_player_count': [],
        'recommended_player_count': [],
        'bgg_type': [],
        'categories': [],
        'mechanics': [],
    }
    for key, value in fields.items():
        if key not in game:
            raise KeyError(f"Unknown CanonicalGame field: {key}")
        game[key] = value
    return game
