"""
`flask --app app load-fixtures`: reset the database with demo users, authors and books.
"""
from __future__ import annotations

import random

import click
from flask import current_app
from flask.cli import with_appcontext

from data_models import db, Author, Book
from security import create_user
from tag_cache import CACHE_TAG, get_cache

DEMO_PASSWORD = "password"


def load_fixtures(authors: int = 10, books: int = 20, seed: int | None = None) -> None:
    rng = random.Random(seed)

    db.drop_all()
    db.create_all()

    create_user("user@bookapi.com", DEMO_PASSWORD, ["ROLE_USER"])
    create_user("admin@bookapi.com", DEMO_PASSWORD, ["ROLE_ADMIN"])

    author_list = []
    for i in range(authors):
        author = Author(lastname=f"Nom de l'auteur {i}", first_name=f"Prénom {i}")
        db.session.add(author)
        author_list.append(author)

    for i in range(books):
        book = Book(
            title=f"Livre {i}",
            cover_text=f"Quatrième de couverture numéro : {i}",
            comment=f"Commentaire du bibliothécaire {i}",
        )
        if author_list:
            rng.choice(author_list).add_book(book)
        db.session.add(book)

    db.session.commit()
    get_cache().invalidate_tags([CACHE_TAG])
    current_app.logger.info("Fixtures loaded: %d authors, %d books", authors, books)


@click.command("load-fixtures")
@click.option("--authors", default=10, show_default=True, help="Number of authors to create.")
@click.option("--books", default=20, show_default=True, help="Number of books to create.")
@click.option("--seed", type=int, default=None, help="Random seed for author assignment.")
@with_appcontext
def load_fixtures_command(authors: int, books: int, seed: int | None) -> None:
    """Drop all tables and load demo data."""
    load_fixtures(authors=authors, books=books, seed=seed)
    click.echo(f"Loaded {authors} authors, {books} books and 2 users.")
