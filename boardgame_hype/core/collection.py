# ===== IMPORTS & DEPENDENCIES =====
import logging
from typing import Callable, Dict, List, Optional

from boardgame_hype.core.hype import calculate_hype_score, now_ms
from boardgame_hype.core.session import CollectionSession
from boardgame_hype.core.store import ArrayRemove, ArrayUnion, DocumentStore, games_path
from boardgame_hype.enrichment.catalog_enricher import CatalogEnricher, FetchGame
from boardgame_hype.models.game import (
    CanonicalGame, CollectionEntry, HypeEvent, ImportProgress,
    ENTRY_CATALOG_FIELDS, IMPORT_UPDATE_FIELDS, SORT_KEYS
)
from boardgame_hype.config import MAX_BATCH_OPERATIONS

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ImportProgress], None]

# Refreshing from the owned-collection listing may also fill these, when non-empty
REFRESH_FILL_FIELDS = ('thumbnail', 'image', 'bgg_type')

# ===== UTILITY FUNCTIONS =====
def build_entry(game: CanonicalGame, created_at: Optional[int] = None) -> CollectionEntry:
    """A new collection entry: the game's catalog fields, empty user fields and one +1 hype event."""
    created_at = now_ms() if created_at is None else created_at
    entry: CollectionEntry = {'bgg_id': game['id']}
    for field in ENTRY_CATALOG_FIELDS:
        entry[field] = game[field]
    entry.update({
        'labels': [],
        'play_dates': [],
        'personal_note': '',
        'hype_events': [{'direction': 1, 'timestamp': created_at}],
        'added_at': created_at,
        'hidden': False,
    })
    return entry


def import_update_fields(game: CanonicalGame) -> Dict:
    return {field: game[field] for field in IMPORT_UPDATE_FIELDS}


def sort_entries(
    entries: List[CollectionEntry],
    key: str = 'name',
    include_hidden: bool = False,
    now: Optional[int] = None
) -> List[CollectionEntry]:
    """Sorts for display: names A-Z, everything else highest first. Hidden entries are dropped unless asked for."""
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key '{key}'. Expected one of: {', '.join(SORT_KEYS)}")

    visible = [entry for entry in entries if include_hidden or not entry.get('hidden')]
    if key == 'name':
        return sorted(visible, key=lambda e: e.get('name', '').lower())
    if key == 'hype_score':
        now = now_ms() if now is None else now
        return sorted(visible, key=lambda e: calculate_hype_score(e.get('hype_events'), now=now), reverse=True)
    return sorted(visible, key=lambda e: e.get(key) or 0, reverse=True)

# ===== CORE BUSINESS LOGIC =====
class CollectionManager:
    """
    Owns every write to a user's collection. Catalog operations (import, refresh,
    enrichment) only ever touch catalog-owned fields; labels, play dates, notes,
    hype events and the hidden flag change only through the explicit user actions below.
    """

    def __init__(self, store: DocumentStore, user_id: str, session: Optional[CollectionSession] = None):
        if session is not None and (session.user_id != user_id or session.store is not store):
            raise ValueError("Session belongs to a different user or store")
        self.store = store
        self.user_id = user_id
        self.path = games_path(user_id)
        self.session = session

    # --- reads ---
    # With an open session, reads come from its live snapshot instead of the store.
    def _live(self) -> Optional[CollectionSession]:
        if self.session is not None and not self.session.closed:
            return self.session
        return None

    def entries(self) -> List[CollectionEntry]:
        if self._live():
            return self.session.entries
        return [{**document, 'id': key} for key, document in self.store.list(self.path)]

    def get_entry(self, bgg_id: int) -> Optional[CollectionEntry]:
        if self._live():
            return self.session.get_entry(bgg_id)
        document = self.store.get(self.path, str(bgg_id))
        return {**document, 'id': str(bgg_id)} if document is not None else None

    def is_in_collection(self, bgg_id: int) -> bool:
        if self._live():
            return self.session.is_in_collection(bgg_id)
        return self.store.get(self.path, str(bgg_id)) is not None

    # --- catalog reconciliation ---
    def _reconcile(self, game: CanonicalGame, fill_fields=()) -> bool:
        """Creates or refreshes one entry. Returns True when a new entry was created."""
        key = str(game['id'])
        if not self.is_in_collection(game['id']):
            self.store.put(self.path, key, build_entry(game))
            return True

        fields = import_update_fields(game)
        for field in fill_fields:
            if game[field]:
                fields[field] = game[field]
        self.store.update(self.path, key, fields)
        return False

    def add_game(self, game: CanonicalGame) -> CollectionEntry:
        """Adds a game picked by the user. Adding one that already exists refreshes its catalog fields instead."""
        created = self._reconcile(game, fill_fields=ENTRY_CATALOG_FIELDS)
        logger.info(f"[{self.__class__.__name__}] {'Added' if created else 'Refreshed'} '{game['name']}' (ID: {game['id']}).")
        return self.get_entry(game['id'])

    def _import(self, games: List[CanonicalGame], on_progress: Optional[ProgressCallback], fill_fields=()) -> Dict[str, int]:
        total = len(games)
        done = created = failed = 0

        for game in games:
            if on_progress:
                on_progress({'total': total, 'done': done, 'phase': 'importing', 'current': game.get('name')})
            try:
                if self._reconcile(game, fill_fields=fill_fields):
                    created += 1
            except Exception as e:
                failed += 1
                logger.warning(f"⚠️ [{self.__class__.__name__}] Failed to import '{game.get('name')}' (ID: {game.get('id')}): {e}")
            done += 1

        if on_progress:
            on_progress({'total': total, 'done': total, 'phase': 'done', 'current': None})

        updated = total - created - failed
        logger.info(f"✅ [{self.__class__.__name__}] Import finished: {created} created, {updated} updated, {failed} failed.")
        return {'total': total, 'created': created, 'updated': updated, 'failed': failed}

    def import_games(self, games: List[CanonicalGame], on_progress: Optional[ProgressCallback] = None) -> Dict[str, int]:
        """
        Imports parsed CSV games. New games get an entry with one creation hype event;
        existing ones get name, scores, player counts, playing time and year refreshed.
        """
        return self._import(games, on_progress)

    async def refresh_from_catalog(self, api_client, username: str, on_progress: Optional[ProgressCallback] = None) -> Dict[str, int]:
        """Pulls the user's owned games from the Catalog and reconciles them like an import."""
        games = await api_client.fetch_owned_collection(username)
        return self._import(games, on_progress, fill_fields=REFRESH_FILL_FIELDS)

    async def enrich_missing(
        self,
        fetch_game: FetchGame,
        on_progress: Optional[ProgressCallback] = None,
        enricher_cls=CatalogEnricher,
        **enricher_options
    ) -> Dict[str, int]:
        """Backfills entries without a thumbnail or type tags; see CatalogEnricher."""
        enricher = enricher_cls(self.store, self.user_id, fetch_game, **enricher_options)
        return await enricher.enrich(self.entries(), on_progress)

    def clear(self, batch_limit: int = MAX_BATCH_OPERATIONS) -> int:
        """Deletes every entry in batches of at most `batch_limit`. Returns the number of batches committed."""
        keys = [key for key, _ in self.store.list(self.path)]
        commits = 0
        batch = self.store.batch()

        for count, key in enumerate(keys, start=1):
            batch.delete(self.path, key)
            if count % batch_limit == 0:
                batch.commit()
                commits += 1
                batch = self.store.batch()

        if len(batch):
            batch.commit()
            commits += 1

        logger.info(f"[{self.__class__.__name__}] Cleared {len(keys)} entries in {commits} batches for user '{self.user_id}'.")
        return commits

    # --- user actions ---
    def remove_game(self, bgg_id: int) -> None:
        self.store.delete(self.path, str(bgg_id))
        logger.info(f"[{self.__class__.__name__}] Removed game {bgg_id}.")

    def toggle_hidden(self, bgg_id: int, hidden: bool) -> None:
        self.store.update(self.path, str(bgg_id), {'hidden': hidden})

    def nudge_hype(self, bgg_id: int, direction: int, timestamp: Optional[int] = None) -> HypeEvent:
        if direction not in (1, -1):
            raise ValueError("Hype direction must be 1 or -1")
        event: HypeEvent = {'direction': direction, 'timestamp': now_ms() if timestamp is None else timestamp}
        entry = self.store.get(self.path, str(bgg_id)) or {}
        events = list(entry.get('hype_events') or [])
        events.append(event)
        self.store.update(self.path, str(bgg_id), {'hype_events': events})
        return event

    def add_play_date(self, bgg_id: int, date: str) -> None:
        self.store.update(self.path, str(bgg_id), {'play_dates': ArrayUnion(date)})

    def remove_play_date(self, bgg_id: int, date: str) -> None:
        self.store.update(self.path, str(bgg_id), {'play_dates': ArrayRemove(date)})

    def add_label(self, bgg_id: int, label: str) -> None:
        self.store.update(self.path, str(bgg_id), {'labels': ArrayUnion(label)})

    def remove_label(self, bgg_id: int, label: str) -> None:
        self.store.update(self.path, str(bgg_id), {'labels': ArrayRemove(label)})

    def update_personal_note(self, bgg_id: int, note: str) -> None:
        self.store.update(self.path, str(bgg_id), {'personal_note': note})
