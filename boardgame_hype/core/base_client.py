# ===== IMPORTS & DEPENDENCIES =====
import logging
import asyncio
import aiohttp
import os
import hashlib
import time
from typing import Optional, Dict, Tuple

from boardgame_hype.config import COMMON_HEADERS, REQUEST_TIMEOUT
from boardgame_hype.core.errors import UpstreamError

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# ===== CORE BUSINESS LOGIC =====
class BaseWebClient:
    """A base class for Catalog clients providing header handling, an optional disk cache and status mapping."""

    def __init__(self, session: aiohttp.ClientSession, cache_dir: Optional[str] = None, cache_ttl: int = 0, token: str = ""):
        self._session = session
        self._cache_dir = cache_dir
        self._cache_ttl = cache_ttl
        self._token = token
        if self._cache_dir:
            os.makedirs(self._cache_dir, exist_ok=True)
        logger.debug(f"[{self.__class__.__name__}] Initialized with cache dir: {self._cache_dir} and TTL: {self._cache_ttl}s")

    def _build_headers(self, headers: Optional[Dict[str, str]] = None, with_token: bool = True) -> Dict[str, str]:
        """Merges the default headers with `headers` and attaches the bearer token if one is configured."""
        request_headers = dict(headers or COMMON_HEADERS)
        if with_token and self._token:
            request_headers['Authorization'] = f"Bearer {self._token}"
        return request_headers

    def _get_cache_path(self, key: str) -> str:
        """Generates a cache file path from a given key."""
        hashed_key = hashlib.sha256(key.encode('utf-8')).hexdigest()
        return os.path.join(self._cache_dir, f"{hashed_key}.cache")

    def _is_cache_valid(self, cache_path: str) -> bool:
        """Checks if a cache file exists and has not expired."""
        if not os.path.exists(cache_path):
            return False

        file_mod_time = os.path.getmtime(cache_path)
        if (time.time() - file_mod_time) > self._cache_ttl:
            logger.debug(f"[{self.__class__.__name__}] Cache file expired: {cache_path}")
            return False
        return True

    async def _request(self, url: str, headers: Optional[Dict[str, str]] = None, method: str = 'GET') -> Tuple[int, str]:
        """
        Performs one HTTP request and returns (status, body text).
        Network-level errors propagate to the caller; no retry happens here.
        """
        timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
        async with self._session.request(method, url, headers=headers, timeout=timeout) as response:
            body = await response.text()
            logger.debug(f"[{self.__class__.__name__}] {method} {url} -> {response.status}")
            return response.status, body

    async def _fetch_text(self, url: str, headers: Optional[Dict[str, str]] = None, use_cache: bool = True) -> str:
        """
        Fetches a URL and returns its body, serving and filling the disk cache when enabled.
        Raises UpstreamError for any non-success status.
        """
        cache_path = None
        if use_cache and self._cache_dir and self._cache_ttl > 0:
            cache_path = self._get_cache_path(url)
            if self._is_cache_valid(cache_path):
                logger.info(f"✅ [{self.__class__.__name__}] Loading content from cache: {cache_path}")
                with open(cache_path, 'r', encoding='utf-8') as f:
                    return f.read()

        logger.info(f"➡️ [{self.__class__.__name__}] Fetching from network: {url}")
        try:
            status, body = await self._request(url, headers=headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"❌ [{self.__class__.__name__}] Network error on {url}: {type(e).__name__}")
            raise UpstreamError(f"Failed to reach BGG: {type(e).__name__}", status=502) from e

        if not 200 <= status < 300:
            logger.warning(f"⚠️ [{self.__class__.__name__}] HTTP error on {url}: Status {status}")
            raise UpstreamError(f"BGG API error: {status}", status=status)

        if cache_path:
            with open(cache_path, 'w', encoding='utf-8') as f:
                f.write(body)
            logger.info(f"💾 [{self.__class__.__name__}] Content saved to cache: {cache_path}")
        return body
