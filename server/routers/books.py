"""Books router: book detail with author, sections and editions."""

from fastapi import APIRouter, HTTPException, Request

from server.schemas.responses import BookDetailResponse, EditionOut

books_router = APIRouter(prefix="/books", tags=["Books"])


@books_router.get("/{book_id}", response_model=BookDetailResponse)
def get_book(request: Request, book_id: str) -> BookDetailResponse:
    db = request.app.state.db
    book = db.get_book(book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")

    languages = {lang.id: lang.code for lang in db.list_languages()}
    models = {m.id: m.name for m in db.list_models()}
    editions = [
        EditionOut(
            id=e.id,
            language_code=languages.get(e.language_id, ""),
            model_id=e.model_id,
            model_name=models.get(e.model_id, ""),
            created_at=e.created_at,
        )
        for e in db.get_editions(book_id)
    ]
    return BookDetailResponse.from_book(book, db.get_author(book.author_id), editions)
