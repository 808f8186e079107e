# ===== IMPORTS & DEPENDENCIES =====
import csv
import io
import logging
from typing import Dict, List, Optional

from boardgame_hype.models.game import CanonicalGame, new_canonical_game
from boardgame_hype.utils.game_utils import to_int, to_float, parse_player_list

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

REQUIRED_CSV_COLUMNS = frozenset({
    'objectid', 'objectname', 'yearpublished', 'minplayers', 'maxplayers',
    'playingtime', 'minplaytime', 'maxplaytime', 'average', 'baverage',
    'avgweight', 'bggbestplayers', 'bggrecplayers',
})

# ===== CORE BUSINESS LOGIC =====
def parse_csv_rows(text: str) -> List[Dict[str, str]]:
    """
    Tokenizes RFC 4180 CSV into one dict per data row, keyed by lower-cased header.
    Quoted fields may contain commas, newlines and doubled quotes. Blank rows are skipped
    and short rows are padded with ''. A leading byte-order mark is ignored.
    """
    text = (text or '').lstrip('\ufeff')
    if not text:
        return []

    reader = csv.reader(io.StringIO(text, newline=''))
    headers: Optional[List[str]] = None
    rows: List[Dict[str, str]] = []

    for values in reader:
        if not any(value.strip() for value in values):
            continue
        if headers is None:
            headers = [h.strip().lower() for h in values]
            continue
        rows.append({
            header: (values[i] if i < len(values) else '')
            for i, header in enumerate(headers)
        })

    return rows


def row_to_game(row: Dict[str, str]) -> Optional[CanonicalGame]:
    """Projects one export row into a CanonicalGame. Rows without an id or name yield None."""
    game_id = to_int(row.get('objectid'))
    name = (row.get('objectname') or '').strip()
    if not game_id or not name:
        return None

    # Thumbnails, descriptions and tags are not part of this export
    return new_canonical_game(
        game_id,
        name,
        year_published=to_int(row.get('yearpublished')),
        min_players=to_int(row.get('minplayers')),
        max_players=to_int(row.get('maxplayers')),
        playing_time=to_int(row.get('playingtime')),
        min_play_time=to_int(row.get('minplaytime')),
        max_play_time=to_int(row.get('maxplaytime')),
        bgg_score=to_float(row.get('average')),
        average_rating=to_float(row.get('baverage')),
        weight=to_float(row.get('avgweight')),
        best_player_count=parse_player_list(row.get('bggbestplayers', '')),
        recommended_player_count=parse_player_list(row.get('bggrecplayers', '')),
    )


def parse_collection_csv(text: str) -> List[CanonicalGame]:
    """Parses a BGG collection CSV export into CanonicalGame records."""
    rows = parse_csv_rows(text)
    if rows:
        missing = REQUIRED_CSV_COLUMNS - set(rows[0].keys())
        if missing:
            logger.warning(f"[parse_collection_csv] Export is missing expected columns: {', '.join(sorted(missing))}")

    games = []
    for row in rows:
        game = row_to_game(row)
        if game is None:
            logger.debug(f"[parse_collection_csv] Dropping row without objectid/objectname: {row.get('objectid')!r}")
            continue
        games.append(game)

    logger.info(f"[parse_collection_csv] Parsed {len(games)} games from {len(rows)} CSV rows.")
    return games
