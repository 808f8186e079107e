# ===== IMPORTS & DEPENDENCIES =====
import logging
import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

from boardgame_hype.core.store import DocumentStore, games_path
from boardgame_hype.models.game import CanonicalGame, CollectionEntry, ImportProgress, ENRICH_UPDATE_FIELDS
from boardgame_hype.config import ENRICH_WAVE_SIZE, ENRICH_WAVE_PAUSE

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

FetchGame = Callable[[int], Awaitable[CanonicalGame]]
ProgressCallback = Callable[[ImportProgress], None]

# ===== CORE BUSINESS LOGIC =====
class CatalogEnricher:
    """
    Backfills thumbnails, descriptions, type/category/mechanic tags, scores and player-count
    recommendations for collection entries that are missing them.

    Works in waves of `wave_size` concurrent fetches; each wave is awaited in full and
    followed by a short pause before the next one starts. A failing entry is logged and
    skipped without affecting the rest of its wave.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        fetch_game: FetchGame,
        wave_size: int = ENRICH_WAVE_SIZE,
        pause: float = ENRICH_WAVE_PAUSE,
        sleep=asyncio.sleep
    ):
        self.store = store
        self.user_id = user_id
        self._fetch_game = fetch_game
        self._wave_size = max(1, wave_size)
        self._pause = pause
        self._sleep = sleep

    @staticmethod
    def needs_enrichment(entry: CollectionEntry) -> bool:
        return not entry.get('thumbnail') or not entry.get('bgg_type')

    @staticmethod
    def enrichment_fields(details: CanonicalGame) -> Dict:
        """The catalog fields the backfill may overwrite; user-owned fields are never included."""
        return {field: details[field] for field in ENRICH_UPDATE_FIELDS}

    async def _enrich_one(self, entry: CollectionEntry) -> bool:
        name = entry.get('name', '?')
        bgg_id = entry.get('bgg_id')
        try:
            details = await self._fetch_game(bgg_id)
            self.store.update(games_path(self.user_id), str(bgg_id), self.enrichment_fields(details))
            logger.info(f"✅ [{self.__class__.__name__}] Enriched '{name}' (ID: {bgg_id}).")
            return True
        except Exception as e:
            logger.warning(f"⚠️ [{self.__class__.__name__}] Failed to enrich '{name}' (ID: {bgg_id}): {e}")
            return False

    async def enrich(self, entries: List[CollectionEntry], on_progress: Optional[ProgressCallback] = None) -> Dict[str, int]:
        """Enriches every entry in `entries` that needs it. Returns counts of enriched and failed entries."""
        to_enrich = [entry for entry in entries if self.needs_enrichment(entry)]
        total = len(to_enrich)
        done = 0
        enriched = 0

        def report(phase: str, current: Optional[str] = None) -> None:
            if on_progress:
                on_progress({'total': total, 'done': done, 'phase': phase, 'current': current})

        logger.info(f"🚀 [{self.__class__.__name__}] {total} of {len(entries)} entries need enrichment.")
        report('enriching')

        async def run(entry: CollectionEntry) -> bool:
            nonlocal done
            report('enriching', entry.get('name'))
            ok = await self._enrich_one(entry)
            done += 1
            report('done' if done >= total else 'enriching')
            return ok

        for start in range(0, total, self._wave_size):
            wave = to_enrich[start:start + self._wave_size]
            results = await asyncio.gather(*(run(entry) for entry in wave), return_exceptions=True)
            enriched += sum(1 for result in results if result is True)

            if start + self._wave_size < total:
                await self._sleep(self._pause)

        report('done')
        failed = total - enriched
        logger.info(f"🏁 [{self.__class__.__name__}] Enrichment finished: {enriched} enriched, {failed} failed.")
        return {'total': total, 'enriched': enriched, 'failed': failed}
