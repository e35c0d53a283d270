import asyncio
import logging
from typing import List, Optional

import httpx

from shelfscan.config import Settings
from shelfscan.models import EnrichedBook
from shelfscan.providers.google_books import GoogleBooksProvider

logger = logging.getLogger(__name__)


async def _lookup_one(provider: GoogleBooksProvider, title: str) -> EnrichedBook:
    try:
        return await provider.lookup(title)
    except Exception as e:
        logger.warning("Error searching for book %r: %s", title, e)
        return EnrichedBook.missing(title, error=str(e) or e.__class__.__name__)


async def enrich_titles(
    titles: List[str],
    settings: Settings,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[EnrichedBook]:
    """Look every title up concurrently; the result is index-aligned with ``titles``."""
    if not titles:
        return []
    if client is not None:
        provider = GoogleBooksProvider(settings, client=client)
        return list(await asyncio.gather(*(_lookup_one(provider, t) for t in titles)))
    async with httpx.AsyncClient(timeout=settings.google_books_timeout_seconds) as shared:
        provider = GoogleBooksProvider(settings, client=shared)
        return list(await asyncio.gather(*(_lookup_one(provider, t) for t in titles)))
