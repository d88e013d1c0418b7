from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from models.billing import BillingSummary, CreditTransaction
from models.book import Author, Book, Section
from models.search import RankedBook, SearchResult


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SectionOut(_Response):
    title: str
    from_page: int
    to_page: int
    summary: str

    @classmethod
    def from_section(cls, section: Section) -> "SectionOut":
        return cls(title=section.title, from_page=section.from_page,
                   to_page=section.to_page, summary=section.summary)


class AuthorOut(_Response):
    id: str
    pen_name: str
    bio: str

    @classmethod
    def from_author(cls, author: Author) -> "AuthorOut":
        return cls(id=author.id, pen_name=author.pen_name, bio=author.bio)


class BookOut(_Response):
    id: str
    rank: int
    title: str
    summary: str
    page_count: int
    cover_url: Optional[str]
    author: AuthorOut
    language: str
    edition_id: Optional[str]
    sections: list[SectionOut]

    @classmethod
    def from_ranked(cls, ranked: RankedBook) -> "BookOut":
        book = ranked.book
        return cls(
            id=book.id,
            rank=ranked.rank,
            title=book.title,
            summary=book.summary,
            page_count=book.page_count,
            cover_url=book.cover_url,
            author=AuthorOut.from_author(ranked.author),
            language=ranked.language_code,
            edition_id=ranked.edition.id if ranked.edition else None,
            sections=[SectionOut.from_section(s) for s in book.sections],
        )


class SearchResponse(_Response):
    search_id: str
    cached: bool
    page_number: int
    books: list[BookOut]

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchResponse":
        return cls(
            search_id=result.search_id,
            cached=result.cached,
            page_number=result.page_number,
            books=[BookOut.from_ranked(rb) for rb in result.books],
        )


class EditionOut(_Response):
    id: str
    language_code: str
    model_id: int
    model_name: str
    created_at: Optional[Union[datetime, str]] = None


class BookDetailResponse(_Response):
    id: str
    title: str
    summary: str
    page_count: int
    cover_url: Optional[str]
    cover_prompt: str
    author: Optional[AuthorOut]
    sections: list[SectionOut]
    editions: list[EditionOut]

    @classmethod
    def from_book(cls, book: Book, author: Optional[Author], editions: list[EditionOut]) -> "BookDetailResponse":
        return cls(
            id=book.id,
            title=book.title,
            summary=book.summary,
            page_count=book.page_count,
            cover_url=book.cover_url,
            cover_prompt=book.cover_prompt,
            author=AuthorOut.from_author(author) if author else None,
            sections=[SectionOut.from_section(s) for s in book.sections],
            editions=editions,
        )


class BillingResponse(_Response):
    user_id: str
    credits: int
    held_credits: int
    available: int

    @classmethod
    def from_summary(cls, summary: BillingSummary) -> "BillingResponse":
        return cls(
            user_id=summary.user_id,
            credits=summary.credits,
            held_credits=summary.held_credits,
            available=summary.available,
        )


class TransactionOut(_Response):
    id: int
    amount: int
    transaction_type: str
    description: str
    created_at: Optional[Union[datetime, str]] = None

    @classmethod
    def from_transaction(cls, txn: CreditTransaction) -> "TransactionOut":
        return cls(
            id=txn.id,
            amount=txn.amount,
            transaction_type=txn.transaction_type.value,
            description=txn.description,
            created_at=txn.created_at,
        )


class Pagination(_Response):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class TransactionsResponse(_Response):
    transactions: list[TransactionOut]
    pagination: Pagination
