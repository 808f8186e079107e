# ===== IMPORTS & DEPENDENCIES =====
import logging
import re
from typing import List, Optional

from boardgame_hype.core.store import DocumentStore, USERNAMES_PATH, games_path, settings_path
from boardgame_hype.models.game import CollectionEntry, UserProfile
from boardgame_hype.config import USERNAME_MIN_LENGTH, USERNAME_MAX_LENGTH, RESERVED_USERNAMES

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

PROFILE_KEY = "profile"
USERNAME_REGEX = re.compile(r'^[a-zA-Z0-9_-]+$')

# ===== UTILITY FUNCTIONS =====
def validate_username(username: str) -> Optional[str]:
    """Returns a human-readable problem with `username`, or None when it is acceptable."""
    if len(username) < USERNAME_MIN_LENGTH:
        return f"At least {USERNAME_MIN_LENGTH} characters"
    if len(username) > USERNAME_MAX_LENGTH:
        return f"Max {USERNAME_MAX_LENGTH} characters"
    if not USERNAME_REGEX.match(username):
        return "Letters, numbers, _ and - only"
    if username.lower() in RESERVED_USERNAMES:
        return "Reserved name"
    return None

# ===== CORE BUSINESS LOGIC =====
class ProfileService:
    """Public profiles: a unique username reservation per user and an opt-in public collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self.store.get(settings_path(user_id), PROFILE_KEY)

    def is_username_available(self, username: str, current_user_id: Optional[str] = None) -> bool:
        reservation = self.store.get(USERNAMES_PATH, username.lower())
        if reservation is None:
            return True
        return reservation.get('user_id') == current_user_id

    def save_profile(self, user_id: str, username: str, is_public: bool) -> UserProfile:
        """Reserves the username (releasing the user's previous one) and saves the profile in one batch."""
        problem = validate_username(username)
        if problem:
            raise ValueError(problem)
        lower_username = username.lower()
        if not self.is_username_available(lower_username, user_id):
            raise ValueError("Username is taken")

        profile: UserProfile = {'username': lower_username, 'is_public': is_public}
        batch = self.store.batch()
        current = self.get_profile(user_id)
        if current and current.get('username') and current['username'] != lower_username:
            batch.delete(USERNAMES_PATH, current['username'])
        batch.put(USERNAMES_PATH, lower_username, {'user_id': user_id, 'username': lower_username})
        batch.put(settings_path(user_id), PROFILE_KEY, profile)
        batch.commit()

        logger.info(f"[{self.__class__.__name__}] Saved profile '{lower_username}' for user '{user_id}' (public={is_public}).")
        return profile

    def set_public(self, user_id: str, is_public: bool) -> None:
        if self.get_profile(user_id) is None:
            return
        self.store.update(settings_path(user_id), PROFILE_KEY, {'is_public': is_public})

    def get_user_id_by_username(self, username: str) -> Optional[str]:
        reservation = self.store.get(USERNAMES_PATH, username.lower())
        return reservation.get('user_id') if reservation else None

    def is_user_public(self, user_id: str) -> bool:
        profile = self.get_profile(user_id)
        return bool(profile and profile.get('is_public') is True)

    def load_public_collection(self, user_id: str) -> List[CollectionEntry]:
        """A one-off copy of someone's collection with personal notes and play dates blanked."""
        return [
            {**document, 'id': key, 'personal_note': '', 'play_dates': []}
            for key, document in self.store.list(games_path(user_id))
        ]
