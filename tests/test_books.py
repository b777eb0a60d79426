"""
Tests for the /api/books endpoints.
"""

from data_models import db, Author, Book

V2 = {"Accept": "application/json; version=2.0"}


def test_list_books_is_paginated(client, make_book):
    for i in range(4):
        make_book(f"Livre {i}")

    data = client.get("/api/books?page=2&limit=3").get_json()
    assert [b["title"] for b in data] == ["Livre 3"]


def test_book_detail_uses_book_group(client, make_author, make_book):
    """A book is serialized with its author, the author without books."""
    author_id = make_author("Hugo", "Victor")
    book_id = make_book("Les Contemplations", author_id=author_id, cover_text="Poèmes")

    response = client.get(f"/api/books/{book_id}")
    assert response.status_code == 200
    data = response.get_json()
    assert data["title"] == "Les Contemplations"
    assert data["coverText"] == "Poèmes"
    assert data["author"] == {"id": author_id, "lastname": "Hugo", "firstName": "Victor"}
    assert data["_links"] == {"self": {"href": f"http://localhost/api/books/{book_id}"}}


def test_book_detail_without_author(client, make_book):
    book_id = make_book("Anonyme")
    assert client.get(f"/api/books/{book_id}").get_json()["author"] is None


def test_book_comment_depends_on_version(client, make_book):
    """`comment` only exists from version 2.0 on."""
    book_id = make_book("Candide", comment="Un classique")

    default = client.get(f"/api/books/{book_id}").get_json()
    assert "comment" not in default

    v2 = client.get(f"/api/books/{book_id}", headers=V2).get_json()
    assert v2["comment"] == "Un classique"


def test_book_list_versions_are_cached_separately(client, make_book):
    make_book("Candide", comment="Un classique")

    assert "comment" not in client.get("/api/books").get_json()[0]
    assert client.get("/api/books", headers=V2).get_json()[0]["comment"] == "Un classique"


def test_book_detail_not_found(client):
    assert client.get("/api/books/404").status_code == 404


def test_create_book_with_author(client, admin_headers, make_author, app):
    """POST then GET returns the created book attached to its author."""
    author_id = make_author("Voltaire", None)
    response = client.post(
        "/api/books",
        json={"title": "Zadig", "coverText": "Conte philosophique", "idAuthor": author_id},
        headers=admin_headers,
    )
    assert response.status_code == 201
    created = response.get_json()
    assert created["author"]["id"] == author_id
    assert response.headers["Location"] == f"http://localhost/api/books/{created['id']}"

    fetched = client.get(f"/api/books/{created['id']}").get_json()
    assert fetched["title"] == "Zadig"
    assert fetched["coverText"] == "Conte philosophique"

    with app.app_context():
        author = db.session.get(Author, author_id)
        assert [b.title for b in author.books] == ["Zadig"]


def test_create_book_unknown_author_means_no_author(client, admin_headers):
    response = client.post(
        "/api/books", json={"title": "Orphelin", "idAuthor": 12345}, headers=admin_headers
    )
    assert response.status_code == 201
    assert response.get_json()["author"] is None


def test_create_book_without_id_author(client, admin_headers):
    response = client.post("/api/books", json={"title": "Orphelin"}, headers=admin_headers)
    assert response.status_code == 201
    assert response.get_json()["author"] is None


def test_create_book_with_comment_in_version_2(client, admin_headers):
    response = client.post(
        "/api/books",
        json={"title": "Candide", "comment": "Un classique"},
        headers={**admin_headers, **V2},
    )
    assert response.status_code == 201
    assert response.get_json()["comment"] == "Un classique"


def test_create_book_requires_title(client, admin_headers, app):
    response = client.post("/api/books", json={"coverText": "Sans titre"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.get_json()["violations"] == [
        {"propertyPath": "title", "title": "Le titre du livre est obligatoire"}
    ]
    with app.app_context():
        assert Book.query.count() == 0


def test_create_book_rejects_non_integer_id_author(client, admin_headers):
    response = client.post(
        "/api/books", json={"title": "Zadig", "idAuthor": "abc"}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.get_json()["violations"][0]["propertyPath"] == "idAuthor"


def test_create_book_requires_admin(client, user_headers):
    response = client.post("/api/books", json={"title": "Zadig"}, headers=user_headers)
    assert response.status_code == 403
    assert "créer un livre" in response.get_json()["message"]


def test_update_book_moves_it_to_another_author(client, admin_headers, make_author, make_book, app):
    first = make_author("Hugo")
    second = make_author("Zola")
    book_id = make_book("Titre", author_id=first)

    response = client.put(
        f"/api/books/{book_id}",
        json={"title": "Nouveau titre", "coverText": "Texte", "idAuthor": second},
        headers=admin_headers,
    )
    assert response.status_code == 204

    with app.app_context():
        book = db.session.get(Book, book_id)
        assert book.title == "Nouveau titre"
        assert book.cover_text == "Texte"
        assert book.author.id == second
        assert db.session.get(Author, first).books == []
        assert [b.id for b in db.session.get(Author, second).books] == [book_id]


def test_update_book_without_id_author_detaches_it(client, admin_headers, make_author, make_book, app):
    author_id = make_author("Hugo")
    book_id = make_book("Titre", author_id=author_id)

    client.put(f"/api/books/{book_id}", json={"title": "Titre"}, headers=admin_headers)

    with app.app_context():
        assert db.session.get(Book, book_id).author is None
        assert db.session.get(Author, author_id) is not None


def test_update_book_same_author(client, admin_headers, make_author, make_book, app):
    author_id = make_author("Hugo")
    book_id = make_book("Titre", author_id=author_id)

    client.put(
        f"/api/books/{book_id}",
        json={"title": "Autre", "idAuthor": author_id},
        headers=admin_headers,
    )

    with app.app_context():
        assert [b.title for b in db.session.get(Author, author_id).books] == ["Autre"]


def test_update_book_invalid_leaves_record_unchanged(client, admin_headers, make_book, app):
    book_id = make_book("Titre", cover_text="Avant")
    response = client.put(
        f"/api/books/{book_id}",
        json={"title": "", "coverText": "Après"},
        headers=admin_headers,
    )
    assert response.status_code == 400

    with app.app_context():
        book = db.session.get(Book, book_id)
        assert book.title == "Titre"
        assert book.cover_text == "Avant"


def test_update_book_requires_authentication(client, make_book):
    book_id = make_book()
    assert client.put(f"/api/books/{book_id}", json={"title": "X"}).status_code == 401


def test_delete_book(client, make_author, make_book, app):
    """DELETE then GET returns 404; the author survives."""
    author_id = make_author("Hugo")
    book_id = make_book("Titre", author_id=author_id)

    response = client.delete(f"/api/books/{book_id}")
    assert response.status_code == 204
    assert client.get(f"/api/books/{book_id}").status_code == 404

    with app.app_context():
        assert db.session.get(Author, author_id).books == []


def test_delete_book_not_found(client):
    assert client.delete("/api/books/77").status_code == 404


def test_book_list_cache_invalidated_by_book_delete(client, make_book):
    book_id = make_book("Titre")
    assert len(client.get("/api/books").get_json()) == 1

    client.delete(f"/api/books/{book_id}")
    assert client.get("/api/books").get_json() == []


def test_author_changes_refresh_cached_book_list(client, admin_headers, make_author, make_book):
    """Books embed their author, so author updates must refresh the book list."""
    author_id = make_author("Hugo", "Victor")
    make_book("Titre", author_id=author_id)
    assert client.get("/api/books").get_json()[0]["author"]["lastname"] == "Hugo"

    client.put(f"/api/authors/{author_id}", json={"lastname": "Zola"}, headers=admin_headers)
    assert client.get("/api/books").get_json()[0]["author"]["lastname"] == "Zola"


def test_book_id_beyond_integer_range_is_not_found(client, admin_headers):
    huge = 99999999999999999999
    assert client.get(f"/api/books/{huge}").status_code == 404
    assert client.put(f"/api/books/{huge}", json={"title": "X"}, headers=admin_headers).status_code == 404
    assert client.delete(f"/api/books/{huge}").status_code == 404


def test_list_books_huge_page_is_empty(client, make_book):
    make_book()
    response = client.get("/api/books?page=99999999999999999999")
    assert response.status_code == 200
    assert response.get_json() == []


def test_create_book_rejects_id_author_out_of_range(client, admin_headers, app):
    response = client.post(
        "/api/books", json={"title": "X", "idAuthor": 99999999999999999999}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.get_json()["violations"][0]["propertyPath"] == "idAuthor"
    with app.app_context():
        assert Book.query.count() == 0


def test_update_book_rejects_id_author_out_of_range(client, admin_headers, make_book):
    book_id = make_book()
    response = client.put(
        f"/api/books/{book_id}",
        json={"title": "X", "idAuthor": -99999999999999999999},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_create_book_rejects_fractional_id_author(client, admin_headers, make_author):
    author_id = make_author()
    response = client.post(
        "/api/books", json={"title": "X", "idAuthor": author_id + 0.9}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.get_json()["violations"][0]["propertyPath"] == "idAuthor"


def test_create_book_accepts_whole_float_id_author(client, admin_headers, make_author):
    author_id = make_author()
    response = client.post(
        "/api/books", json={"title": "X", "idAuthor": float(author_id)}, headers=admin_headers
    )
    assert response.status_code == 201
    assert response.get_json()["author"]["id"] == author_id


def test_equivalent_versions_share_one_cache_entry(client, make_book, redis_client):
    """Versions exposing the same fields are cached under a single key."""
    make_book("Candide", comment="Un classique")

    for version in ("2", "2.0", "2.00", "3.1"):
        data = client.get("/api/books", headers={"Accept": f"application/json; version={version}"}).get_json()
        assert data[0]["comment"] == "Un classique"
    for version in ("1", "1.0", "1.9"):
        data = client.get("/api/books", headers={"Accept": f"application/json; version={version}"}).get_json()
        assert "comment" not in data[0]

    assert len(redis_client.keys("bookapi:item:getAllBooks-*")) == 2
