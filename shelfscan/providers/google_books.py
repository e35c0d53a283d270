from typing import Any, Dict, List, Optional
import logging

import httpx

from shelfscan.config import Settings
from shelfscan.models import EnrichedBook

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 200


def truncate_description(text: Optional[str], limit: int = DESCRIPTION_LIMIT) -> Optional[str]:
    if not text:
        return None
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _identifier(identifiers: List[Dict[str, Any]], kind: str) -> Optional[str]:
    return next((i.get("identifier") for i in identifiers if i.get("type") == kind), None)


def normalize_volume(title: str, item: Dict[str, Any]) -> EnrichedBook:
    """Map one Google Books volume onto the record returned to clients; ``title`` echoes the query."""
    vi = item.get("volumeInfo") or {}
    identifiers = vi.get("industryIdentifiers") or []
    return EnrichedBook(
        title=title,
        found=True,
        id=item.get("id"),
        authors=vi.get("authors") or [],
        published_date=vi.get("publishedDate"),
        description=truncate_description(vi.get("description")),
        page_count=vi.get("pageCount"),
        categories=vi.get("categories") or [],
        average_rating=vi.get("averageRating"),
        image_links=vi.get("imageLinks") or {},
        preview_link=vi.get("previewLink"),
        isbn10=_identifier(identifiers, "ISBN_10"),
        isbn13=_identifier(identifiers, "ISBN_13"),
    )


class GoogleBooksProvider:
    """Title lookups over a caller-owned ``httpx.AsyncClient`` (one client per enrichment batch)."""

    BASE = "https://www.googleapis.com/books/v1/volumes"

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    def params_for(self, title: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {"q": f"intitle:{title}", "maxResults": 1, "printType": "books"}
        if self.settings.google_books_api_key:
            params["key"] = self.settings.google_books_api_key
        return params

    async def lookup(self, title: str) -> EnrichedBook:
        r = await self.client.get(self.BASE, params=self.params_for(title))
        r.raise_for_status()
        data = r.json()
        items = data.get("items") or []
        if not data.get("totalItems") or not items:
            return EnrichedBook.missing(title)
        return normalize_volume(title, items[0])
