"""
Pytest configuration and shared fixtures.
"""

import fakeredis
import pytest

from app import create_app
from data_models import db, Author, Book, User
from security import create_token, create_user
from settings import Settings


@pytest.fixture
def settings():
    """Settings for an in-memory database."""
    return Settings(
        database_url="sqlite:///:memory:",
        jwt_secret_key="test-jwt-secret",
        log_level="WARNING",
        default_limit=3,
    )


@pytest.fixture
def redis_client():
    """In-process redis used as the cache backend."""
    return fakeredis.FakeRedis()


@pytest.fixture
def app(settings, redis_client):
    """Application with an admin and a regular user."""
    app = create_app(settings, cache_client=redis_client)
    app.config["TESTING"] = True
    with app.app_context():
        create_user("admin@bookapi.com", "password", ["ROLE_ADMIN"])
        create_user("user@bookapi.com", "password", ["ROLE_USER"])
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def _bearer(app, email):
    with app.app_context():
        user = User.query.filter_by(email=email).one()
        return {"Authorization": f"Bearer {create_token(user)}"}


@pytest.fixture
def admin_headers(app):
    return _bearer(app, "admin@bookapi.com")


@pytest.fixture
def user_headers(app):
    return _bearer(app, "user@bookapi.com")


@pytest.fixture
def make_author(app):
    """Insert an author (and optionally books) directly; returns the author id."""
    def _make(lastname="Hugo", first_name="Victor", titles=()):
        with app.app_context():
            author = Author(lastname=lastname, first_name=first_name)
            for title in titles:
                author.add_book(Book(title=title, cover_text=f"Couverture de {title}"))
            db.session.add(author)
            db.session.commit()
            return author.id
    return _make


@pytest.fixture
def make_book(app):
    """Insert a book directly; returns the book id."""
    def _make(title="Les Misérables", author_id=None, cover_text=None, comment=None):
        with app.app_context():
            book = Book(title=title, cover_text=cover_text, comment=comment)
            if author_id is not None:
                db.session.get(Author, author_id).add_book(book)
            db.session.add(book)
            db.session.commit()
            return book.id
    return _make
