import pytest

from app.folio.errors import ValidationError
from app.folio.modules.titles.service import normalize_isbn13


def test_normalize_isbn13():
    assert normalize_isbn13("978-0-14-143951-8") == "9780141439518"
    assert normalize_isbn13("  ") is None
    with pytest.raises(ValidationError):
        normalize_isbn13("978-0-14")


def test_create_title(login, factory):
    author_id = factory.contact("Jane", "Austen", roles=["author"])
    r = login("editor@acme.test").post(
        "/titles/",
        json={"name": "Persuasion", "isbn13": "978-0-14-143951-8", "author_contact_id": author_id},
    )
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["isbn13"] == "9780141439518"
    assert data["author_name"] == "Jane Austen"


def test_title_requires_name(login):
    r = login().post("/titles/", json={"name": " "})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Title is required"


def test_duplicate_isbn(login, factory):
    factory.title("Emma", isbn13="9780141439587")
    r = login().post("/titles/", json={"name": "Emma (again)", "isbn13": "978-0141439587"})
    assert r.status_code == 409
    assert r.get_json()["error"] == "A title with this ISBN already exists"


def test_author_must_have_author_role(login, factory):
    vendor_id = factory.contact("Pat", "Printer", roles=["vendor"])
    r = login().post("/titles/", json={"name": "Misattributed", "author_contact_id": vendor_id})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Selected contact is not an author"


def test_finance_cannot_create_titles(login):
    r = login("finance@acme.test").post("/titles/", json={"name": "Ledger"})
    assert r.status_code == 403


def test_list_titles_sorted(login, factory):
    factory.title("Zanzibar")
    factory.title("Anthology")
    names = [t["name"] for t in login().get("/titles/").get_json()["data"]]
    assert names == ["Anthology", "Zanzibar"]
