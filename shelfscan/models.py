from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractedBook(_CamelModel):
    title: str = "Unknown Title"
    author: str = "Unknown Author"
    isbn: Optional[str] = None
    genre: Optional[str] = None
    page_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class EnrichedBook(_CamelModel):
    """Catalog match for one extracted title.

    Only fields that were explicitly set are serialized, so a miss renders as
    ``{"title", "found"}`` (plus ``error`` when the lookup failed) while a hit
    keeps its nullable fields as ``null``.
    """

    title: str
    found: bool = False
    error: Optional[str] = None
    id: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    published_date: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = None
    categories: List[str] = Field(default_factory=list)
    average_rating: Optional[float] = None
    image_links: Dict[str, str] = Field(default_factory=dict)
    preview_link: Optional[str] = None
    isbn10: Optional[str] = None
    isbn13: Optional[str] = None

    @classmethod
    def missing(cls, title: str, error: Optional[str] = None) -> "EnrichedBook":
        if error is None:
            return cls(title=title, found=False)
        return cls(title=title, found=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


# Request bodies

class SendMessageRequest(_CamelModel):
    message: str
    system_prompt: Optional[str] = None


class AnalyzeImageRequest(BaseModel):
    image: str
    prompt: str
