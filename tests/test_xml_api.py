"""
Tests for boardgame_hype.sources.xml_api — search, item detail and owned-collection parsing,
plus the API client wiring.
"""

from __future__ import annotations

import asyncio

import pytest

from boardgame_hype.core.errors import ClientInputError, NotFound, ParseError, UpstreamError, UpstreamNotReady
from boardgame_hype.core.fetch_policy import RetryPolicy
from boardgame_hype.sources.xml_api import (
    CatalogApiClient, parse_owned_collection, parse_search_results, parse_thing
)


# ── Fixtures ───────────────────────────────────────────────────────────────────

SEARCH_XML = """<?xml version="1.0" encoding="utf-8"?>
<items total="4">
  <item type="boardgame" id="13">
    <name type="primary" value="Catan"/>
    <yearpublished value="1995"/>
  </item>
  <item type="boardgame" id="2">
    <name type="alternate" value="Alt Name"/>
    <name type="primary" value="Newer A"/>
    <yearpublished value="2015"/>
  </item>
  <item type="boardgame" id="3">
    <name type="alternate" value="Only Alternate"/>
    <yearpublished value="2015"/>
  </item>
  <item type="boardgame" id="0">
    <name type="primary" value="Broken"/>
  </item>
</items>"""


def _poll_group(players: str, best: int, recommended: int, not_recommended: int) -> str:
    return (
        f'<results numplayers="{players}">'
        f'<result value="Best" numvotes="{best}"/>'
        f'<result value="Recommended" numvotes="{recommended}"/>'
        f'<result value="Not Recommended" numvotes="{not_recommended}"/>'
        f'</results>'
    )


THING_XML = f"""<?xml version="1.0" encoding="utf-8"?>
<items termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item type="boardgame" id="13">
    <thumbnail> https://cf.geekdo-images.com/thumb.jpg </thumbnail>
    <image>https://cf.geekdo-images.com/full.jpg</image>
    <name type="primary" sortindex="1" value="Catan"/>
    <name type="alternate" sortindex="1" value="Die Siedler von Catan"/>
    <description>&lt;p&gt;Build settlements &amp;amp; trade.&lt;/p&gt;</description>
    <yearpublished value="1995"/>
    <minplayers value="3"/>
    <maxplayers value="4"/>
    <poll name="suggested_numplayers" title="User Suggested Number of Players" totalvotes="300">
      {_poll_group("2", 40, 60, 10)}
      {_poll_group("3", 100, 50, 5)}
      {_poll_group("4", 80, 40, 5)}
      {_poll_group("5", 10, 5, 50)}
    </poll>
    <playingtime value="120"/>
    <minplaytime value="60"/>
    <maxplaytime value="120"/>
    <link type="boardgamecategory" id="1" value="Negotiation"/>
    <link type="boardgamecategory" id="2" value="Economic"/>
    <link type="boardgamemechanic" id="3" value="Dice Rolling"/>
    <link type="boardgamedesigner" id="4" value="Klaus Teuber"/>
    <statistics page="1">
      <ratings>
        <average value="7.1"/>
        <bayesaverage value="6.9"/>
        <ranks>
          <rank type="subtype" name="boardgame" friendlyname="Board Game Rank" value="500"/>
          <rank type="family" name="familygames" friendlyname="Family Game Rank" value="100"/>
          <rank type="family" name="strategygames" friendlyname="Strategy Game Rank" value="400"/>
        </ranks>
        <averageweight value="2.3"/>
      </ratings>
    </statistics>
  </item>
</items>"""


COLLECTION_XML = """<?xml version="1.0" encoding="utf-8"?>
<items totalitems="3" termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item objecttype="thing" objectid="13" subtype="boardgame">
    <name sortindex="1">Catan</name>
    <yearpublished>1995</yearpublished>
    <image>https://img/full.jpg</image>
    <thumbnail>https://img/thumb.jpg</thumbnail>
    <stats minplayers="3" maxplayers="4" playingtime="120">
      <rating value="8">
        <average value="7.1"/>
        <ranks>
          <rank type="family" friendlyname="Strategy Game Rank" value="400"/>
        </ranks>
        <averageweight value="2.3"/>
      </rating>
    </stats>
    <status own="1" prevowned="0" wishlist="0"/>
  </item>
  <item objecttype="thing" objectid="822" subtype="boardgame">
    <name sortindex="1">Carcassonne</name>
    <status own="0" wishlist="1"/>
  </item>
  <item objecttype="thing" objectid="0" subtype="boardgame">
    <name sortindex="1">Broken</name>
    <status own="1"/>
  </item>
</items>"""


# ── Search ─────────────────────────────────────────────────────────────────────

class TestParseSearchResults:
    def test_sorted_by_year_descending_with_stable_ties(self):
        results = parse_search_results(SEARCH_XML)
        assert [r['id'] for r in results] == [2, 3, 13]

    def test_prefers_primary_name_then_any_name(self):
        results = {r['id']: r['name'] for r in parse_search_results(SEARCH_XML)}
        assert results[2] == 'Newer A'
        assert results[3] == 'Only Alternate'

    def test_non_positive_ids_dropped(self):
        assert all(r['id'] > 0 for r in parse_search_results(SEARCH_XML))

    def test_zero_matches_is_an_empty_list(self):
        assert parse_search_results('<items total="0"/>') == []

    def test_malformed_xml_raises_parse_error(self):
        with pytest.raises(ParseError):
            parse_search_results('<items><item id="1"></items>')


# ── Item detail ────────────────────────────────────────────────────────────────

class TestParseThing:
    def test_best_player_count_uses_75_percent_of_top_votes(self):
        game = parse_thing(THING_XML)
        assert game['best_player_count'] == [3, 4]

    def test_recommended_mirrors_best(self):
        game = parse_thing(THING_XML)
        assert game['recommended_player_count'] == game['best_player_count'] == [3, 4]
        assert game['recommended_player_count'] is not game['best_player_count']

    def test_core_fields(self):
        game = parse_thing(THING_XML)
        assert game['id'] == 13
        assert game['name'] == 'Catan'
        assert game['thumbnail'] == 'https://cf.geekdo-images.com/thumb.jpg'
        assert game['image'] == 'https://cf.geekdo-images.com/full.jpg'
        assert game['year_published'] == 1995
        assert (game['min_players'], game['max_players']) == (3, 4)
        assert (game['playing_time'], game['min_play_time'], game['max_play_time']) == (120, 60, 120)
        assert game['bgg_score'] == 7.1
        assert game['average_rating'] == 6.9
        assert game['weight'] == 2.3

    def test_tags(self):
        game = parse_thing(THING_XML)
        assert game['categories'] == ['Negotiation', 'Economic']
        assert game['mechanics'] == ['Dice Rolling']
        assert game['bgg_type'] == ['Family Game', 'Strategy Game']

    def test_description_markup_stripped(self):
        game = parse_thing(THING_XML)
        assert game['description'] == 'Build settlements & trade.'

    def test_no_votes_means_no_best_counts(self):
        xml = '<items><item id="5"><name type="primary" value="X"/>' \
              '<poll name="suggested_numplayers">' + _poll_group("2", 0, 0, 0) + '</poll></item></items>'
        game = parse_thing(xml)
        assert game['best_player_count'] == []
        assert game['recommended_player_count'] == []

    def test_minimal_item_defaults(self):
        game = parse_thing('<items><item id="5"/></items>')
        assert game['name'] == 'Unknown'
        assert game['weight'] == 0.0
        assert game['categories'] == []
        assert game['description'] == ''

    def test_missing_item_is_not_found(self):
        with pytest.raises(NotFound):
            parse_thing('<items termsofuse="x"/>')

    def test_malformed_xml_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_thing('<html><body>blocked')

    def test_unexpected_root_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_thing('<html><body>blocked</body></html>')


# ── Owned collection ───────────────────────────────────────────────────────────

class TestParseOwnedCollection:
    def test_only_owned_with_positive_id(self):
        games = parse_owned_collection(COLLECTION_XML)
        assert [g['id'] for g in games] == [13]

    def test_fields_from_stats(self):
        game = parse_owned_collection(COLLECTION_XML)[0]
        assert game['name'] == 'Catan'
        assert game['thumbnail'] == 'https://img/thumb.jpg'
        assert game['year_published'] == 1995
        assert (game['min_players'], game['max_players']) == (3, 4)
        assert game['playing_time'] == game['min_play_time'] == game['max_play_time'] == 120
        assert game['bgg_score'] == 7.1
        assert game['weight'] == 2.3
        assert game['bgg_type'] == ['Strategy Game']

    def test_poll_fields_left_empty(self):
        game = parse_owned_collection(COLLECTION_XML)[0]
        assert game['best_player_count'] == []
        assert game['recommended_player_count'] == []
        assert game['average_rating'] == 0.0

    def test_empty_collection_is_valid(self):
        assert parse_owned_collection('<items totalitems="0" termsofuse="x"></items>') == []

    def test_items_absent_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_owned_collection('<items termsofuse="x"></items>')

    def test_error_document_is_parse_error(self):
        with pytest.raises(ParseError, match="Invalid username"):
            parse_owned_collection('<errors><error><message>Invalid username specified</message></error></errors>')


# ── Client ─────────────────────────────────────────────────────────────────────

class TestCatalogApiClient:
    def test_search_sends_bearer_token(self, fake_session):
        fake_session.queue((200, SEARCH_XML))
        client = CatalogApiClient(fake_session, token="secret", cache_dir=None)
        results = asyncio.run(client.search("catan"))
        assert len(results) == 3
        request = fake_session.requests[0]
        assert request['headers']['Authorization'] == 'Bearer secret'
        assert 'query=catan' in request['url']

    def test_search_requires_query(self, fake_session):
        client = CatalogApiClient(fake_session, token="secret", cache_dir=None)
        with pytest.raises(ClientInputError):
            asyncio.run(client.search("  "))

    def test_search_without_token(self, fake_session):
        client = CatalogApiClient(fake_session, token="", cache_dir=None)
        with pytest.raises(UpstreamError) as excinfo:
            asyncio.run(client.search("catan"))
        assert excinfo.value.status == 503

    def test_get_game_forwards_upstream_status(self, fake_session):
        fake_session.queue((429, 'slow down'))
        client = CatalogApiClient(fake_session, token="secret", cache_dir=None)
        with pytest.raises(UpstreamError) as excinfo:
            asyncio.run(client.get_game(13))
        assert excinfo.value.status == 429

    def test_get_game(self, fake_session):
        fake_session.queue((200, THING_XML))
        client = CatalogApiClient(fake_session, token="secret", cache_dir=None)
        game = asyncio.run(client.get_game(13))
        assert game['name'] == 'Catan'
        assert 'thing?id=13&stats=1' in fake_session.requests[0]['url']

    def test_owned_collection_polls_until_ready(self, fake_session, sleeps):
        fake_session.queue((202, ''), (202, ''), (200, COLLECTION_XML))
        client = CatalogApiClient(fake_session, token="", cache_dir=None, sleep=sleeps)
        games = asyncio.run(client.fetch_owned_collection("alice"))
        assert [g['id'] for g in games] == [13]
        assert sleeps.calls == [3.0, 3.0]
        assert fake_session.requests[0]['headers']['User-Agent'] == 'BoardGameHype/1.0'

    def test_owned_collection_still_preparing(self, fake_session, sleeps):
        fake_session.default = (202, '')
        client = CatalogApiClient(fake_session, token="", cache_dir=None, sleep=sleeps,
                                  policy=RetryPolicy(max_attempts=2, delay=1.0))
        with pytest.raises(UpstreamNotReady):
            asyncio.run(client.fetch_owned_collection("alice"))
        assert len(fake_session.requests) == 2

    def test_search_uses_disk_cache(self, fake_session, tmp_path):
        fake_session.queue((200, SEARCH_XML))
        client = CatalogApiClient(fake_session, token="secret", cache_dir=str(tmp_path))
        first = asyncio.run(client.search("catan"))
        second = asyncio.run(client.search("catan"))
        assert first == second
        assert len(fake_session.requests) == 1


class TestCatalogApiClientThroughRelay:
    RELAY = "http://relay.local:8080/"

    def test_collection_goes_through_relay_and_keeps_polling(self, fake_session, sleeps):
        fake_session.queue((202, ''), (200, COLLECTION_XML))
        client = CatalogApiClient(fake_session, token="", cache_dir=None, sleep=sleeps, relay_base_url=self.RELAY)
        games = asyncio.run(client.fetch_owned_collection("alice smith"))
        assert [g['id'] for g in games] == [13]
        assert fake_session.requests[0]['url'] == 'http://relay.local:8080/api/bgg/collection?username=alice%20smith'
        assert sleeps.calls == [3.0]

    def test_search_and_thing_need_no_local_token(self, fake_session):
        fake_session.queue((200, SEARCH_XML), (200, THING_XML))
        client = CatalogApiClient(fake_session, token="", cache_dir=None, relay_base_url=self.RELAY)
        asyncio.run(client.search("catan"))
        asyncio.run(client.get_game(13))
        urls = [request['url'] for request in fake_session.requests]
        assert urls == [
            'http://relay.local:8080/api/bgg/search?q=catan',
            'http://relay.local:8080/api/bgg/thing?id=13',
        ]
        assert 'Authorization' not in fake_session.requests[0]['headers']
