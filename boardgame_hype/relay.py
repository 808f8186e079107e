# ===== IMPORTS & DEPENDENCIES =====
import logging
import asyncio
import aiohttp
from aiohttp import web
from typing import Optional
from urllib.parse import quote

from boardgame_hype.core.base_client import BaseWebClient
from boardgame_hype.core.errors import CatalogError
from boardgame_hype.core.fetch_policy import NETWORK_ERRORS, RELAY_POLICY, RetryPolicy, fetch_until_ready
from boardgame_hype.sources.geek_page import GeekPageScraper
from boardgame_hype.config import (
    BGG_API_TOKEN, BGG_SEARCH_URL, BGG_THING_URL, BGG_COLLECTION_URL, COMMON_HEADERS,
    SEARCH_CACHE_TTL, THING_CACHE_TTL, COLLECTION_CACHE_TTL
)

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)


def _xml_response(body: str, max_age: int) -> web.Response:
    return web.Response(
        text=body,
        content_type='application/xml',
        headers={'Cache-Control': f'public, max-age={max_age}'}
    )

# ===== CORE BUSINESS LOGIC =====
class CatalogRelay(BaseWebClient):
    """
    Thin pass-through in front of the BGG XML API and game pages. It attaches the API
    credential, forwards status and body, and polls the collection endpoint while BGG prepares it.
    """

    def __init__(self, session: aiohttp.ClientSession, token: str = BGG_API_TOKEN, policy: RetryPolicy = RELAY_POLICY, sleep=asyncio.sleep):
        super().__init__(session=session, cache_dir=None, token=token)
        self._policy = policy
        self._sleep = sleep
        self._scraper = GeekPageScraper(session, cache_dir=None)

    async def _pass_through(self, url: str, max_age: int) -> web.Response:
        if not self._token:
            return web.Response(text='BGG API token not configured', status=503)
        try:
            status, body = await self._request(url, headers=self._build_headers())
        except NETWORK_ERRORS as e:
            logger.error(f"❌ [{self.__class__.__name__}] BGG proxy error: {type(e).__name__}")
            return web.Response(text='Failed to fetch from BGG', status=502)

        if not 200 <= status < 300:
            return web.Response(text=f'BGG API error: {status}', status=status)
        return _xml_response(body, max_age)

    async def search(self, request: web.Request) -> web.Response:
        query = request.query.get('q')
        if not query:
            return web.Response(text='Missing query parameter', status=400)
        return await self._pass_through(BGG_SEARCH_URL.format(query=quote(query)), SEARCH_CACHE_TTL)

    async def thing(self, request: web.Request) -> web.Response:
        game_id = request.query.get('id')
        if not game_id:
            return web.Response(text='Missing id parameter', status=400)
        return await self._pass_through(BGG_THING_URL.format(id=quote(game_id)), THING_CACHE_TTL)

    async def collection(self, request: web.Request) -> web.Response:
        username = request.query.get('username')
        if not username:
            return web.Response(text='Missing username parameter', status=400)

        url = BGG_COLLECTION_URL.format(username=quote(username))
        headers = self._build_headers(COMMON_HEADERS)
        try:
            body = await fetch_until_ready(
                lambda: self._request(url, headers=headers),
                self._policy,
                sleep=self._sleep,
                label=f"collection of '{username}'"
            )
        except CatalogError as e:
            return web.Response(text=str(e), status=e.status)
        except NETWORK_ERRORS as e:
            logger.error(f"❌ [{self.__class__.__name__}] BGG collection error: {e}")
            return web.Response(text='Failed to fetch collection from BGG', status=502)
        return _xml_response(body, COLLECTION_CACHE_TTL)

    async def scrape(self, request: web.Request) -> web.Response:
        try:
            game = await self._scraper.fetch_game(request.query.get('url', ''))
        except CatalogError as e:
            return web.Response(text=str(e), status=e.status)
        except Exception as e:
            logger.error(f"❌ [{self.__class__.__name__}] Scrape error: {e}", exc_info=True)
            return web.Response(text='Failed to fetch game from BGG', status=502)
        return web.json_response(game, headers={'Cache-Control': f'public, max-age={THING_CACHE_TTL}'})


SESSION_KEY = web.AppKey("session", aiohttp.ClientSession)
RELAY_KEY = web.AppKey("relay", CatalogRelay)


async def handle_search(request: web.Request) -> web.Response:
    return await request.app[RELAY_KEY].search(request)


async def handle_thing(request: web.Request) -> web.Response:
    return await request.app[RELAY_KEY].thing(request)


async def handle_collection(request: web.Request) -> web.Response:
    return await request.app[RELAY_KEY].collection(request)


async def handle_scrape(request: web.Request) -> web.Response:
    return await request.app[RELAY_KEY].scrape(request)


def create_app(session: Optional[aiohttp.ClientSession] = None, **relay_options) -> web.Application:
    """
    Builds the relay application. Without an explicit `session` one is opened on startup
    and closed on cleanup.
    """
    app = web.Application()
    app.router.add_get('/api/bgg/search', handle_search)
    app.router.add_get('/api/bgg/thing', handle_thing)
    app.router.add_get('/api/bgg/collection', handle_collection)
    app.router.add_get('/api/bgg/scrape', handle_scrape)

    async def session_ctx(app: web.Application):
        owned = session is None
        client_session = aiohttp.ClientSession() if owned else session
        app[SESSION_KEY] = client_session
        app[RELAY_KEY] = CatalogRelay(client_session, **relay_options)
        yield
        if owned:
            await client_session.close()
        logger.info("[create_app] Relay shut down.")

    app.cleanup_ctx.append(session_ctx)
    return app
