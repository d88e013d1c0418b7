"""Models package: database, data models, generation schemas and enums."""

from models.database import Database
from models.book import Author, Book, Edition, Section
from models.catalog import Genre, Language, LlmModel, Tag, User
from models.search import RankedBook, SearchContext, SearchRequest, SearchResult
from models.billing import Authorization, BillingSummary, CreditCosts, CreditTransaction
from models.drafts import (
    AuthorBatch,
    AuthorDraft,
    BookBatch,
    BookDraft,
    FacetClassification,
    SectionDraft,
)
from models.enums import (
    AuthorizationPath,
    GenerationKind,
    PipelineState,
    TransactionType,
)

__all__ = [
    "Database",
    "Author",
    "Book",
    "Edition",
    "Section",
    "Genre",
    "Language",
    "LlmModel",
    "Tag",
    "User",
    "RankedBook",
    "SearchContext",
    "SearchRequest",
    "SearchResult",
    "Authorization",
    "BillingSummary",
    "CreditCosts",
    "CreditTransaction",
    "AuthorBatch",
    "AuthorDraft",
    "BookBatch",
    "BookDraft",
    "FacetClassification",
    "SectionDraft",
    "AuthorizationPath",
    "GenerationKind",
    "PipelineState",
    "TransactionType",
]
