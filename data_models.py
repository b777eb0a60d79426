from __future__ import annotations

import sqlite3
from typing import Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
from werkzeug.security import check_password_hash, generate_password_hash

db = SQLAlchemy()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection.
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class Author(db.Model):
    """
    Author model.
    """
    __tablename__ = "author"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    lastname = db.Column(db.String(255), nullable=False, index=True)
    first_name = db.Column(db.String(255), nullable=True)

    # Loaded books are removed by the session, the rest by the FK cascade.
    books = db.relationship(
        "Book",
        back_populates="author",
        cascade="all",
        passive_deletes=True,
        order_by="Book.id",
    )

    def add_book(self, book: Book) -> Author:
        if book not in self.books:
            self.books.append(book)
            book.author = self
        return self

    def remove_book(self, book: Book) -> Author:
        if book in self.books:
            self.books.remove(book)
            # set the owning side to None (unless already changed)
            if book.author is self:
                book.author = None
        return self

    def __repr__(self) -> str:
        return f"<Author id={self.id} lastname={self.lastname!r}>"

    def __str__(self) -> str:
        if self.first_name:
            return f"{self.first_name} {self.lastname}"
        return f"{self.lastname}"


class Book(db.Model):
    """
    Book model.
    """
    __tablename__ = "book"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    title = db.Column(db.String(255), nullable=False, index=True)
    cover_text = db.Column(db.Text, nullable=True)
    comment = db.Column(db.Text, nullable=True)

    author_id = db.Column(
        db.Integer,
        db.ForeignKey("author.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    author = db.relationship("Author", back_populates="books")

    def __repr__(self) -> str:
        return f"<Book id={self.id} title={self.title!r}>"

    def __str__(self) -> str:
        return f"{self.title}"


class User(db.Model):
    """
    API user. Authenticates with email + password and carries a list of roles.
    """
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(180), nullable=False, unique=True, index=True)
    roles = db.Column(db.JSON, nullable=False, default=list)
    password = db.Column(db.String(255), nullable=False)

    def get_roles(self) -> list[str]:
        roles = list(self.roles or [])
        # every user gets at least ROLE_USER
        if "ROLE_USER" not in roles:
            roles.append("ROLE_USER")
        return roles

    def set_password(self, plain: str) -> None:
        self.password = generate_password_hash(plain)

    def check_password(self, plain: Optional[str]) -> bool:
        if not plain or not self.password:
            return False
        return check_password_hash(self.password, plain)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

    def __str__(self) -> str:
        return f"{self.email}"
