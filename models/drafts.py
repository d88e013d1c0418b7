"""Pydantic schemas for structured generator output.

Field aliases are camelCase because that is the shape the generator is
asked to produce; Python code uses the snake_case attribute names.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Draft(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthorDraft(_Draft):
    pen_name: str = Field(min_length=1, description="The author's pen name")
    style_prompt: str = Field(description="A brief description of the author's writing style")
    bio: str = Field(description="A fictional biography of the author (2-3 sentences)")


class AuthorBatch(_Draft):
    authors: list[AuthorDraft] = Field(description="Fictional authors for the specified genre")


class SectionDraft(_Draft):
    title: str = Field(min_length=1, description="Section title, e.g. 'Chapter 1' or 'Introduction'")
    from_page: int = Field(ge=1, description="Starting page number for this section")
    to_page: int = Field(ge=1, description="Ending page number for this section")
    summary: str = Field(description="1-2 sentence summary of this section")


class BookDraft(_Draft):
    title: str = Field(min_length=1, description="The book title")
    summary: str = Field(description="A compelling book summary (2-3 sentences)")
    page_count: int = Field(ge=1, description="Realistic page count for this type of book")
    cover_prompt: str = Field(
        default="",
        description="A single sentence visual description of the book cover",
    )
    sections: list[SectionDraft] = Field(min_length=1, description="Sections with page ranges")


class BookBatch(_Draft):
    books: list[BookDraft] = Field(description="Fictional books matching the search criteria")


class FacetClassification(_Draft):
    genre_slug: str = Field(description="The most appropriate genre slug for the query")
    language_code: str = Field(description="The detected language code for the query")
    reasoning: str = Field(default="", description="Why this genre and language were chosen")
