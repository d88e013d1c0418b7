"""LangGraph search pipeline state definition."""

from typing import Optional, TypedDict

from config.exceptions import LibrariumError
from models.billing import Authorization
from models.book import Author
from models.drafts import BookDraft
from models.enums import PipelineState
from models.search import SearchContext, SearchRequest, SearchResult


class SearchPipelineState(TypedDict, total=False):
    """State shared by all search pipeline nodes.

    Fields are grouped logically:
    - Input: request, user_id
    - Resolution: context, fingerprint
    - Miss path: lock_token, authorization, authors, books
    - Output: result, settlement_error
    - Control: state, history, error, failure, last_node
    """

    # Input
    request: SearchRequest
    user_id: Optional[str]

    # Resolution
    context: SearchContext
    fingerprint: str

    # Miss path
    lock_token: Optional[str]
    authorization: Authorization
    authors: list[Author]
    books: list[BookDraft]

    # Output
    result: SearchResult
    settlement_error: str

    # Control flow
    state: PipelineState
    history: list[str]  # Node names in execution order
    error: str
    failure: LibrariumError
    last_node: str
