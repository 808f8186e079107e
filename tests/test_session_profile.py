"""
Tests for boardgame_hype.core.session and boardgame_hype.core.profile.
"""

from __future__ import annotations

import pytest

from boardgame_hype.core.collection import CollectionManager
from boardgame_hype.core.profile import ProfileService, validate_username
from boardgame_hype.core.session import CollectionSession


# ── CollectionSession ─────────────────────────────────────────────────────────

class TestCollectionSession:
    def test_snapshot_follows_store_changes(self, store, make_game):
        manager = CollectionManager(store, "u1")
        manager.add_game(make_game(13, "Catan"))

        with CollectionSession(store, "u1") as session:
            assert session.loading is False
            assert session.is_in_collection(13)
            manager.add_game(make_game(42, "Azul"))
            assert set(session.by_bgg_id()) == {13, 42}
            assert session.get_entry(42)['id'] == '42'
            manager.remove_game(13)
            assert not session.is_in_collection(13)

        assert session.closed
        assert session.entries == []

    def test_listener_receives_snapshots_until_unsubscribed(self, store, make_game):
        manager = CollectionManager(store, "u1")
        session = CollectionSession(store, "u1")
        seen = []
        unsubscribe = session.subscribe(lambda entries: seen.append(len(entries)))
        manager.add_game(make_game(1))
        unsubscribe()
        manager.add_game(make_game(2))
        assert seen == [0, 1]
        session.close()

    def test_closed_session_stops_watching(self, store, make_game):
        session = CollectionSession(store, "u1")
        session.close()
        CollectionManager(store, "u1").add_game(make_game())
        assert session.entries == []
        assert session.loading is True

    def test_other_users_are_invisible(self, store, make_game):
        CollectionManager(store, "u2").add_game(make_game())
        with CollectionSession(store, "u1") as session:
            assert session.entries == []

    def test_requires_user(self, store):
        with pytest.raises(ValueError):
            CollectionSession(store, "")


# ── Profiles ──────────────────────────────────────────────────────────────────

class TestValidateUsername:
    @pytest.mark.parametrize("username", ["abc", "Meeple_Fan-42", "x" * 24])
    def test_valid(self, username):
        assert validate_username(username) is None

    @pytest.mark.parametrize("username", ["ab", "x" * 25, "has space", "émile", "admin", "API"])
    def test_invalid(self, username):
        assert validate_username(username) is not None


class TestProfileService:
    def test_save_and_lookup(self, store):
        profiles = ProfileService(store)
        profile = profiles.save_profile("u1", "MeepleFan", True)
        assert profile == {'username': 'meeplefan', 'is_public': True}
        assert profiles.get_user_id_by_username("MEEPLEFAN") == "u1"
        assert profiles.is_user_public("u1")

    def test_username_is_unique(self, store):
        profiles = ProfileService(store)
        profiles.save_profile("u1", "meeplefan", False)
        assert profiles.is_username_available("meeplefan", "u1")
        assert not profiles.is_username_available("meeplefan", "u2")
        with pytest.raises(ValueError):
            profiles.save_profile("u2", "MeepleFan", False)

    def test_renaming_releases_old_username(self, store):
        profiles = ProfileService(store)
        profiles.save_profile("u1", "oldname", False)
        profiles.save_profile("u1", "newname", False)
        assert profiles.get_user_id_by_username("oldname") is None
        assert profiles.get_user_id_by_username("newname") == "u1"
        assert profiles.is_username_available("oldname", "u2")

    def test_invalid_username_is_rejected(self, store):
        with pytest.raises(ValueError):
            ProfileService(store).save_profile("u1", "no", True)

    def test_set_public(self, store):
        profiles = ProfileService(store)
        profiles.set_public("nobody", True)
        assert profiles.get_profile("nobody") is None
        profiles.save_profile("u1", "meeplefan", True)
        profiles.set_public("u1", False)
        assert not profiles.is_user_public("u1")

    def test_public_collection_hides_private_fields(self, store, make_game):
        manager = CollectionManager(store, "u1")
        manager.add_game(make_game())
        manager.update_personal_note(13, "secret")
        manager.add_play_date(13, "2024-02-02")
        manager.add_label(13, "fun")

        [entry] = ProfileService(store).load_public_collection("u1")

        assert entry['personal_note'] == ''
        assert entry['play_dates'] == []
        assert entry['labels'] == ['fun']
        assert manager.get_entry(13)['personal_note'] == 'secret'
