from __future__ import annotations

from flask import Blueprint, current_app, jsonify, url_for
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import InternalServerError, Unauthorized

from data_models import db, Author, Book
from security import authenticate, create_token, is_granted, load_current_user, require_role
from serializers import GROUP_AUTHORS, GROUP_BOOKS, get_api_version, hidden_book_fields, serialize
from tag_cache import CACHE_TAG, get_cache
from validation import (
    MAX_ID,
    AuthorPayload,
    BookPayload,
    LoginPayload,
    parse_pagination,
    parse_payload,
)

bp = Blueprint("api", __name__, url_prefix="/api")
bp.before_request(load_current_user)


# -----------------------------
# Helpers
# -----------------------------
def _settings():
    return current_app.config["SETTINGS"]


def _json(body: str, status: int = 200, headers=None):
    return current_app.response_class(body, status=status, headers=headers, mimetype="application/json")


def _no_content():
    return current_app.response_class(status=204)


def _pagination():
    settings = _settings()
    return parse_pagination(settings.default_page, settings.default_limit, settings.max_limit)


def _audience() -> str:
    # admins see extra links, so they get their own cache entries
    return "admin" if is_granted("ROLE_ADMIN") else "public"


def _commit(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to %s", action)
        raise InternalServerError(f"Database error while trying to {action}.") from exc


def _invalidate_cache() -> None:
    get_cache().invalidate_tags([CACHE_TAG])


# -----------------------------
# Authentication
# -----------------------------
@bp.post("/login_check")
def login_check():
    """
    Exchange an email/password pair for a JWT.
    Body: {"username": "...", "password": "..."}
    """
    payload = parse_payload(LoginPayload)
    user = authenticate(payload.username, payload.password)
    if user is None:
        current_app.logger.warning("Failed login for %s", payload.username)
        raise Unauthorized("Invalid credentials.")
    return jsonify({"token": create_token(user)})


# -----------------------------
# Authors
# -----------------------------
@bp.get("/authors")
def list_authors():
    """
    Paginated list of authors with their books.
    Query params:
      - page: page number, starting at 1
      - limit: authors per page
    """
    page, limit = _pagination()
    cache_key = f"getAllAuthors-{page}-{limit}-{_audience()}"

    def load() -> str:
        current_app.logger.debug("Loading authors page %s (limit %s) from database", page, limit)
        authors = (
            Author.query.order_by(Author.id.asc())
            .paginate(page=page, per_page=limit, error_out=False)
            .items
        )
        return serialize(authors, GROUP_AUTHORS)

    return _json(get_cache().get(cache_key, load, tags=[CACHE_TAG]))


@bp.get(f"/authors/<int(max={MAX_ID}):id>")
def detail_author(id: int):
    author = db.get_or_404(Author, id)
    return _json(serialize(author, GROUP_AUTHORS))


@bp.post("/authors")
@require_role("ROLE_ADMIN", "Vous n'avez pas les droits suffisants pour créer un auteur")
def create_author():
    """
    Create an author. Books cannot be attached here; they point to their
    author through idAuthor instead.
    """
    payload = parse_payload(AuthorPayload)

    author = Author(lastname=payload.lastname, first_name=payload.first_name)
    db.session.add(author)
    _commit("create author")
    _invalidate_cache()
    current_app.logger.info("Author created: %s", author.id)

    location = url_for("api.detail_author", id=author.id, _external=True)
    return _json(serialize(author, GROUP_AUTHORS), 201, {"Location": location})


@bp.put(f"/authors/<int(max={MAX_ID}):id>")
@require_role("ROLE_ADMIN", "Vous n'avez pas les droits suffisants pour éditer un auteur")
def update_author(id: int):
    """Replace lastname and firstName. Books are left untouched."""
    author = db.get_or_404(Author, id)
    payload = parse_payload(AuthorPayload)

    author.lastname = payload.lastname
    author.first_name = payload.first_name
    _commit("update author")
    _invalidate_cache()
    current_app.logger.info("Author updated: %s", author.id)
    return _no_content()


@bp.delete(f"/authors/<int(max={MAX_ID}):id>")
@require_role("ROLE_ADMIN", "Vous n'avez pas les droits suffisants pour supprimer un auteur")
def delete_author(id: int):
    """Delete an author together with all of their books."""
    author = db.get_or_404(Author, id)

    db.session.delete(author)
    _commit("delete author")
    _invalidate_cache()
    current_app.logger.info("Author deleted: %s", id)
    return _no_content()


# -----------------------------
# Books
# -----------------------------
@bp.get("/books")
def list_books():
    """
    Paginated list of books with their author.
    Query params:
      - page: page number, starting at 1
      - limit: books per page
    """
    page, limit = _pagination()
    version = get_api_version()
    # one entry per visible field set, not per version string
    fields = ",".join(sorted(hidden_book_fields(version))) or "all"
    cache_key = f"getAllBooks-{page}-{limit}-{fields}-{_audience()}"

    def load() -> str:
        current_app.logger.debug("Loading books page %s (limit %s) from database", page, limit)
        books = (
            Book.query.order_by(Book.id.asc())
            .paginate(page=page, per_page=limit, error_out=False)
            .items
        )
        return serialize(books, GROUP_BOOKS, version)

    return _json(get_cache().get(cache_key, load, tags=[CACHE_TAG]))


@bp.get(f"/books/<int(max={MAX_ID}):id>")
def detail_book(id: int):
    book = db.get_or_404(Book, id)
    return _json(serialize(book, GROUP_BOOKS, get_api_version()))


@bp.post("/books")
@require_role("ROLE_ADMIN", "Vous n'avez pas les droits suffisants pour créer un livre")
def create_book():
    """
    Create a book. idAuthor is resolved by hand: when it matches no author
    the book is stored without one.
    """
    payload = parse_payload(BookPayload)

    book = Book(title=payload.title, cover_text=payload.cover_text, comment=payload.comment)
    author = db.session.get(Author, payload.id_author)
    if author is not None:
        author.add_book(book)
    db.session.add(book)
    _commit("create book")
    _invalidate_cache()
    current_app.logger.info("Book created: %s", book.id)

    location = url_for("api.detail_book", id=book.id, _external=True)
    return _json(serialize(book, GROUP_BOOKS, get_api_version()), 201, {"Location": location})


@bp.put(f"/books/<int(max={MAX_ID}):id>")
@require_role("ROLE_ADMIN", "Vous n'avez pas les droits suffisants pour éditer un livre")
def update_book(id: int):
    """Replace title, coverText, comment and the author reference."""
    book = db.get_or_404(Book, id)
    payload = parse_payload(BookPayload)

    book.title = payload.title
    book.cover_text = payload.cover_text
    book.comment = payload.comment

    new_author = db.session.get(Author, payload.id_author)
    if book.author is not None and book.author is not new_author:
        book.author.remove_book(book)
    if new_author is not None:
        new_author.add_book(book)

    _commit("update book")
    _invalidate_cache()
    current_app.logger.info("Book updated: %s", book.id)
    return _no_content()


@bp.delete(f"/books/<int(max={MAX_ID}):id>")
def delete_book(id: int):
    book = db.get_or_404(Book, id)

    db.session.delete(book)
    _commit("delete book")
    _invalidate_cache()
    current_app.logger.info("Book deleted: %s", id)
    return _no_content()
