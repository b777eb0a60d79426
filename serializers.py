"""
JSON representations of the catalog resources.

Two field groups exist: ``getAuthors`` (an author with its books) and
``getBooks`` (a book with its author). Each resource also carries HATEOAS
``_links``; the ``delete`` and ``update`` links are only shown to admins.
Fields added in later API versions are dropped for clients asking for an
older version through the ``Accept`` header.
"""
from __future__ import annotations

import json
from typing import Optional

from flask import current_app, request, url_for
from pydantic import BaseModel, ConfigDict, Field

from data_models import Author, Book
from security import is_granted

GROUP_AUTHORS = "getAuthors"
GROUP_BOOKS = "getBooks"

# field -> first API version exposing it
BOOK_FIELDS_SINCE = {
    "comment": "2.0",
}


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class AuthorSummary(_Out):
    id: int
    lastname: str
    first_name: Optional[str] = Field(default=None, serialization_alias="firstName")


class BookSummary(_Out):
    id: int
    title: str
    cover_text: Optional[str] = Field(default=None, serialization_alias="coverText")


class AuthorRead(AuthorSummary):
    """Author in the getAuthors group."""
    books: list[BookSummary] = []


class BookRead(_Out):
    """Book in the getBooks group."""
    id: int
    title: str
    cover_text: Optional[str] = Field(default=None, serialization_alias="coverText")
    comment: Optional[str] = None
    author: Optional[AuthorSummary] = None


def _version_tuple(version: str) -> tuple[int, ...]:
    parts = []
    for piece in version.split("."):
        try:
            parts.append(int(piece))
        except ValueError:
            parts.append(0)
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)


def get_api_version() -> str:
    """
    Read the requested version from an Accept header such as
    ``application/json; version=2.0``. Falls back to the configured default.
    """
    default = current_app.config["SETTINGS"].default_api_version
    accept = request.headers.get("Accept", "")
    for media in accept.split(","):
        for param in media.split(";")[1:]:
            name, _, value = param.strip().partition("=")
            if name.strip().lower() == "version" and value.strip():
                return value.strip().strip('"')
    return default


def _links(endpoint_prefix: str, resource_id: int) -> dict:
    links = {
        "self": {"href": url_for(f"api.detail_{endpoint_prefix}", id=resource_id, _external=True)},
    }
    if is_granted("ROLE_ADMIN"):
        links["delete"] = {"href": url_for(f"api.delete_{endpoint_prefix}", id=resource_id, _external=True)}
        links["update"] = {"href": url_for(f"api.update_{endpoint_prefix}", id=resource_id, _external=True)}
    return links


def author_to_dict(author: Author) -> dict:
    data = AuthorRead.model_validate(author).model_dump(by_alias=True)
    data["_links"] = _links("author", author.id)
    return data


def hidden_book_fields(version: Optional[str]) -> set[str]:
    """Book fields a client asking for `version` must not see. None hides nothing."""
    if version is None:
        return set()
    requested = _version_tuple(version)
    return {
        name for name, since in BOOK_FIELDS_SINCE.items()
        if requested < _version_tuple(since)
    }


def book_to_dict(book: Book, version: Optional[str] = None) -> dict:
    exclude = hidden_book_fields(version)
    data = BookRead.model_validate(book).model_dump(by_alias=True, exclude=exclude)
    data["_links"] = _links("book", book.id)
    return data


def serialize(items, group: str, version: Optional[str] = None) -> str:
    """Serialize one entity or an iterable of entities for `group` to a JSON string."""
    if group == GROUP_AUTHORS:
        convert = author_to_dict
    elif group == GROUP_BOOKS:
        def convert(book):
            return book_to_dict(book, version)
    else:
        raise ValueError(f"Unknown serialization group: {group}")

    if isinstance(items, (Author, Book)):
        payload = convert(items)
    else:
        payload = [convert(item) for item in items]
    return json.dumps(payload, ensure_ascii=False)

