from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SearchBody(BaseModel):
    """POST /search body. Field checks beyond types happen in validate_search_request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    free_text: Optional[str] = None
    language_code: Optional[str] = None
    genre_slug: Optional[str] = None
    tag_slugs: list[str] = Field(default_factory=list)
    model_id: Optional[int] = None
    page_number: Optional[int] = 1
