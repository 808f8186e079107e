# ===== IMPORTS & DEPENDENCIES =====
import logging
from typing import Callable, Dict, List, Optional

from boardgame_hype.core.store import DocumentStore, Snapshot, games_path
from boardgame_hype.models.game import CollectionEntry

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

Listener = Callable[[List[CollectionEntry]], None]

# ===== CORE BUSINESS LOGIC =====
class CollectionSession:
    """
    A signed-in user's live view of their collection. Create it on sign-in and
    close() it on sign-out; it watches the store and keeps the latest snapshot.
    """

    def __init__(self, store: DocumentStore, user_id: str):
        if not user_id:
            raise ValueError("A session needs a user id")
        self.store = store
        self.user_id = user_id
        self.loading = True
        self._entries: List[CollectionEntry] = []
        self._listeners: List[Listener] = []
        self._unwatch: Optional[Callable[[], None]] = store.watch(
            games_path(user_id), self._on_snapshot, self._on_error
        )
        logger.info(f"[{self.__class__.__name__}] Session opened for user '{user_id}' with {len(self._entries)} games.")

    @property
    def entries(self) -> List[CollectionEntry]:
        return list(self._entries)

    @property
    def closed(self) -> bool:
        return self._unwatch is None

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._entries = [{**document, 'id': key} for key, document in snapshot]
        self.loading = False
        for listener in list(self._listeners):
            listener(self.entries)

    def _on_error(self, error: Exception) -> None:
        logger.error(f"[{self.__class__.__name__}] Collection subscription error: {error}")
        self.loading = False

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers `listener` for every new snapshot and returns the unsubscribe handle."""
        self._listeners.append(listener)
        if not self.loading:
            listener(self.entries)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def by_bgg_id(self) -> Dict[int, CollectionEntry]:
        return {entry.get('bgg_id'): entry for entry in self._entries}

    def is_in_collection(self, bgg_id: int) -> bool:
        return any(entry.get('bgg_id') == bgg_id for entry in self._entries)

    def get_entry(self, bgg_id: int) -> Optional[CollectionEntry]:
        return next((entry for entry in self._entries if entry.get('bgg_id') == bgg_id), None)

    def close(self) -> None:
        if self._unwatch:
            self._unwatch()
            self._unwatch = None
        self._listeners.clear()
        self._entries = []
        self.loading = True
        logger.info(f"[{self.__class__.__name__}] Session closed for user '{self.user_id}'.")

    def __enter__(self) -> 'CollectionSession':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
