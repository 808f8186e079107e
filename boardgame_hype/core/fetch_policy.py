# ===== IMPORTS & DEPENDENCIES =====
import logging
import asyncio
import aiohttp
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple

from boardgame_hype.config import (
    PROCESSING_STATUS, RELAY_MAX_ATTEMPTS, RELAY_RETRY_DELAY,
    CLIENT_MAX_ATTEMPTS, CLIENT_RETRY_DELAY
)
from boardgame_hype.core.errors import UpstreamError, UpstreamNotReady

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

RequestFn = Callable[[], Awaitable[Tuple[int, str]]]
SleepFn = Callable[[float], Awaitable[None]]

NETWORK_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


@dataclass(frozen=True)
class RetryPolicy:
    """A fixed-interval poll: `max_attempts` tries, `delay` seconds apart while the Catalog reports processing."""
    max_attempts: int
    delay: float


RELAY_POLICY = RetryPolicy(max_attempts=RELAY_MAX_ATTEMPTS, delay=RELAY_RETRY_DELAY)
CLIENT_POLICY = RetryPolicy(max_attempts=CLIENT_MAX_ATTEMPTS, delay=CLIENT_RETRY_DELAY)

# ===== CORE BUSINESS LOGIC =====
async def fetch_until_ready(
    request: RequestFn,
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
    label: str = "collection"
) -> str:
    """
    Polls an eventually-consistent Catalog endpoint.

    - A 202 "processing" answer sleeps `policy.delay` and tries again; once the bound
      is used up it raises UpstreamNotReady so callers can offer a retry.
    - Any other non-success status raises UpstreamError immediately.
    - Network errors retry right away up to the same bound; the last one is re-raised as is.
    """
    for attempt in range(policy.max_attempts):
        is_last = attempt >= policy.max_attempts - 1
        try:
            status, body = await request()
        except NETWORK_ERRORS as e:
            logger.warning(f"⚠️ [fetch_until_ready] Network error fetching {label} (Attempt {attempt + 1}/{policy.max_attempts}): {type(e).__name__}")
            if is_last:
                logger.error(f"❌ [fetch_until_ready] Failed to fetch {label} after {policy.max_attempts} attempts.")
                raise
            continue

        if status == PROCESSING_STATUS:
            if is_last:
                logger.warning(f"⚠️ [fetch_until_ready] BGG is still preparing {label} after {policy.max_attempts} attempts.")
                raise UpstreamNotReady("BGG is still preparing the collection. Try again shortly.")
            logger.info(f"[fetch_until_ready] BGG is preparing {label}; retrying in {policy.delay:.1f} seconds...")
            await sleep(policy.delay)
            continue

        if not 200 <= status < 300:
            logger.error(f"❌ [fetch_until_ready] BGG API error fetching {label}: Status {status}")
            raise UpstreamError(f"BGG API error: {status}", status=status)

        return body

    # Only reachable with max_attempts < 1
    raise UpstreamNotReady("BGG is still preparing the collection. Try again shortly.")
