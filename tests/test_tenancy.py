"""Records of one publisher are invisible to another."""


def _acme_records(login, factory):
    author = factory.contact("Ann", "Author", roles=["author"])
    buyer = factory.contact("Bea", "Buyer", email="bea@books.example", roles=["customer"])
    vendor = factory.contact("Val", "Vendor", email="val@print.example", roles=["vendor"])
    title = factory.title("Acme Only", author_id=author)
    project = factory.project(title)
    invoice = (
        login()
        .post("/invoices/", json={"customer_id": buyer, "line_items": [{"description": "Book", "unit_price": "12"}]})
        .get_json()["data"]["id"]
    )
    return {"contact": author, "vendor": vendor, "title": title, "project": project, "invoice": invoice}


def test_other_tenant_gets_not_found(login, factory):
    ids = _acme_records(login, factory)
    client = login("owner@other.test")

    for url in (
        f"/contacts/{ids['contact']}",
        f"/titles/{ids['title']}",
        f"/production/projects/{ids['project']}",
        f"/invoices/{ids['invoice']}",
        f"/invoices/{ids['invoice']}/pdf",
    ):
        assert client.get(url).status_code == 404, url

    r = client.patch(f"/contacts/{ids['contact']}", json={"city": "Elsewhere"})
    assert r.status_code == 404
    r = client.post(f"/invoices/{ids['invoice']}/void")
    assert r.status_code == 404
    r = client.post(f"/production/projects/{ids['project']}/stage", json={"stage": "editing"})
    assert r.status_code == 404


def test_lists_are_scoped(login, factory):
    _acme_records(login, factory)
    factory.contact("Otto", "Other", tenant="other")
    client = login("owner@other.test")

    assert [c["last_name"] for c in client.get("/contacts/").get_json()["data"]] == ["Other"]
    assert client.get("/titles/").get_json()["data"] == []
    assert client.get("/invoices/").get_json()["data"] == []
    assert client.get("/contacts/vendors").get_json()["data"] == []
    board = client.get("/production/board").get_json()["data"]
    assert all(cards == [] for cards in board["stages"].values())


def test_cross_tenant_references_rejected(login, factory):
    ids = _acme_records(login, factory)
    client = login("owner@other.test")

    r = client.post("/production/projects", json={"title_id": ids["title"]})
    assert r.status_code == 404
    assert r.get_json()["error"] == "Title not found"

    r = client.post("/titles/", json={"name": "Borrowed", "author_contact_id": ids["contact"]})
    assert r.status_code == 404

    own_project = factory.project(tenant="other")
    r = client.post(
        f"/production/projects/{own_project}/tasks",
        json={"name": "Print run", "task_type": "printing", "vendor_id": ids["vendor"]},
    )
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid vendor ID"


def test_same_isbn_in_two_tenants(factory):
    factory.title("Shared", isbn13="9780000000002")
    factory.title("Shared", isbn13="9780000000002", tenant="other")
