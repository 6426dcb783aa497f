"""Tests for the production module: projects, Kanban stages, board, calendar and tasks."""
import io
from datetime import date, datetime, timedelta

from app.folio.modules.production.workflow import (
    WORKFLOW_STAGES,
    can_transition_to,
    days_in_stage,
    is_project_overdue,
    is_valid_stage_transition,
)

YESTERDAY = (date.today() - timedelta(days=1)).isoformat()
NEXT_MONTH = (date.today() + timedelta(days=30)).isoformat()


# ---------- Workflow rules ----------
def test_status_transitions():
    assert can_transition_to("draft", "in-progress") == (True, [])
    assert can_transition_to("draft", "completed") == (False, ["Cannot transition from Draft to Completed"])
    assert can_transition_to("completed", "draft") == (False, ["Cannot transition from Completed to Draft"])
    assert can_transition_to("draft", "shipped") == (False, ["Invalid status: shipped"])
    assert can_transition_to("archived", "draft") == (False, ["Current status 'archived' is invalid"])


def test_stage_transitions_are_adjacent():
    assert is_valid_stage_transition("manuscript_received", "editing")
    assert is_valid_stage_transition("proof", "design")
    assert not is_valid_stage_transition("editing", "proof")
    assert not is_valid_stage_transition("editing", "editing")
    assert not is_valid_stage_transition("editing", "typesetting")


def test_overdue_and_days_in_stage():
    today = date(2026, 6, 1)
    assert is_project_overdue(date(2026, 5, 31), "design", today=today)
    assert not is_project_overdue(date(2026, 5, 31), "complete", today=today)
    assert not is_project_overdue(None, "design", today=today)
    assert not is_project_overdue(date(2026, 6, 1), "design", today=today)

    now = datetime(2026, 6, 10, 12, 0)
    assert days_in_stage(datetime(2026, 6, 7, 13, 0), now=now) == 2
    assert days_in_stage(None, now=now) == 0
    assert days_in_stage(datetime(2026, 6, 11), now=now) == 0


# ---------- Projects ----------
def test_create_project(login, factory):
    title_id = factory.title("Northanger Abbey")
    r = login("editor@acme.test").post("/production/projects", json={"title_id": title_id, "target_publication_date": NEXT_MONTH})
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["title_name"] == "Northanger Abbey"
    assert data["status"] == "draft"
    assert data["workflow_stage"] == "manuscript_received"
    assert data["workflow_stage_history"] == []
    assert data["manuscript"] is None
    assert data["tasks"] == [] and data["proofs"] == []


def test_create_project_requires_title(login):
    r = login().post("/production/projects", json={})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Title is required"


def test_one_live_project_per_title(login, factory):
    title_id = factory.title()
    client = login()
    assert client.post("/production/projects", json={"title_id": title_id}).status_code == 201
    r = client.post("/production/projects", json={"title_id": title_id})
    assert r.status_code == 409
    assert r.get_json()["error"] == "A production project already exists for this title"


def test_create_with_manuscript(login, factory):
    title_id = factory.title()
    client = login()
    r = client.post(
        "/production/projects",
        data={"title_id": str(title_id), "manuscript": (io.BytesIO(b"PK\x03\x04 draft"), "Draft One.docx")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201, r.get_json()
    project = r.get_json()["data"]
    assert project["manuscript"]["file_name"] == "Draft One.docx"
    assert project["manuscript"]["file_size"] == len(b"PK\x03\x04 draft")

    r = client.get(f"/production/projects/{project['id']}/manuscript")
    assert r.status_code == 200
    assert r.data == b"PK\x03\x04 draft"


def test_manuscript_type_checked(login, factory):
    title_id = factory.title()
    r = login().post(
        "/production/projects",
        data={"title_id": str(title_id), "manuscript": (io.BytesIO(b"plain text"), "notes.txt")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    assert r.get_json()["error"] == "Manuscript must be a PDF, DOC, or DOCX file"


def test_manuscript_download_without_upload(login, factory):
    pid = factory.project()
    r = login().get(f"/production/projects/{pid}/manuscript/download-url")
    assert r.status_code == 404
    assert r.get_json()["error"] == "No manuscript uploaded for this project"


def test_update_project(login, factory):
    pid = factory.project()
    r = login().patch(f"/production/projects/{pid}", json={"notes": "Rush job", "target_publication_date": NEXT_MONTH})
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["notes"] == "Rush job"
    assert data["target_publication_date"] == NEXT_MONTH


def test_project_status_changes(login, factory):
    pid = factory.project()
    client = login()
    r = client.post(f"/production/projects/{pid}/status", json={"status": "completed"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Cannot transition from Draft to Completed"

    r = client.post(f"/production/projects/{pid}/status", json={"status": "in-progress"})
    assert r.status_code == 200
    assert r.get_json()["data"]["status_label"] == "In Progress"


def test_stage_moves_one_column_at_a_time(login, factory):
    pid = factory.project()
    client = login("editor@acme.test")

    r = client.post(f"/production/projects/{pid}/stage", json={"stage": "design"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Cannot skip stages. Move one stage at a time."

    r = client.post(f"/production/projects/{pid}/stage", json={"stage": "editing"})
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["workflow_stage"] == "editing"
    assert data["days_in_stage"] == 0
    [entry] = data["workflow_stage_history"]
    assert entry["from"] == "manuscript_received"
    assert entry["to"] == "editing"
    assert entry["user_id"] == factory.user_id("editor@acme.test")

    r = client.post(f"/production/projects/{pid}/stage", json={"stage": "manuscript_received"})
    assert r.status_code == 200
    assert len(r.get_json()["data"]["workflow_stage_history"]) == 2


def test_stage_same_or_unknown(login, factory):
    pid = factory.project()
    client = login()
    r = client.post(f"/production/projects/{pid}/stage", json={"stage": "manuscript_received"})
    assert r.status_code == 200
    assert r.get_json()["data"]["workflow_stage_history"] == []

    r = client.post(f"/production/projects/{pid}/stage", json={"stage": "typesetting"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid workflow stage: typesetting"


def test_delete_project_is_admin_only(login, factory):
    pid = factory.project()
    r = login("editor@acme.test").delete(f"/production/projects/{pid}")
    assert r.status_code == 403
    assert r.get_json()["error"] == "Only admins can delete projects"

    client = login()
    assert client.delete(f"/production/projects/{pid}").status_code == 200
    assert client.get(f"/production/projects/{pid}").status_code == 404
    assert client.get("/production/projects").get_json()["data"] == []


def test_deleted_project_frees_title(login, factory):
    title_id = factory.title()
    pid = factory.project(title_id)
    client = login()
    client.delete(f"/production/projects/{pid}")
    assert client.post("/production/projects", json={"title_id": title_id}).status_code == 201


# ---------- Board / calendar ----------
def test_board_groups_by_stage(login, factory):
    factory.project(factory.title("Sense and Sensibility", isbn13="9780141439662"))
    moved = factory.project(factory.title("Lady Susan"))
    client = login()
    client.post(f"/production/projects/{moved}/stage", json={"stage": "editing"})

    board = client.get("/production/board").get_json()["data"]
    assert board["stage_order"] == list(WORKFLOW_STAGES)
    assert set(board["stages"]) == set(WORKFLOW_STAGES)
    assert [c["title_name"] for c in board["stages"]["manuscript_received"]] == ["Sense and Sensibility"]
    assert [c["id"] for c in board["stages"]["editing"]] == [moved]
    assert board["stages"]["complete"] == []

    board = client.get("/production/board?search=97801414396").get_json()["data"]
    assert board["stages"]["editing"] == []
    assert len(board["stages"]["manuscript_received"]) == 1


def test_board_date_filter(login, factory):
    factory.project(target=NEXT_MONTH)
    factory.project(factory.title("Undated"))
    board = login().get(f"/production/board?date_from={date.today().isoformat()}").get_json()["data"]
    assert len(board["stages"]["manuscript_received"]) == 1


def test_board_card_overdue(login, factory):
    factory.project(target=YESTERDAY)
    card = login().get("/production/board").get_json()["data"]["stages"]["manuscript_received"][0]
    assert card["is_overdue"] is True
    assert card["task_stats"] == {"total": 0, "completed": 0}


def test_calendar_events(login, factory):
    pid = factory.project(target=YESTERDAY)
    client = login()
    client.post(f"/production/projects/{pid}/tasks", json={"name": "Copyedit", "task_type": "editing", "due_date": NEXT_MONTH})

    events = client.get("/production/calendar").get_json()["data"]
    assert [e["type"] for e in events] == ["publication_date", "task_due_date"]
    assert events[0]["is_overdue"] is True
    assert events[1]["is_overdue"] is False
    assert events[1]["title"] == "Copyedit (The Long Draft)"

    events = client.get(f"/production/calendar?date_from={date.today().isoformat()}").get_json()["data"]
    assert [e["type"] for e in events] == ["task_due_date"]


# ---------- Author views ----------
def test_author_status_orders_undated_last(login, factory):
    author = factory.contact("Jane", "Austen", roles=["author"])
    factory.project(factory.title("Undated", author_id=author))
    factory.project(factory.title("Later", author_id=author), target="2027-03-01")
    factory.project(factory.title("Sooner", author_id=author), target="2027-01-01")
    factory.project(factory.title("Someone Else"))

    rows = login().get(f"/production/authors/{author}").get_json()["data"]
    assert [r["title_name"] for r in rows] == ["Sooner", "Later", "Undated"]


def test_author_portal(login, factory):
    author = factory.contact("Jane", "Austen", roles=["author"])
    factory.project(factory.title("Emma", author_id=author))
    factory.link_portal(author, "author@acme.test")

    client = login("author@acme.test")
    rows = client.get("/production/portal").get_json()["data"]
    assert [r["title_name"] for r in rows] == ["Emma"]
    assert rows[0]["workflow_stage_label"] == "Manuscript Received"

    assert client.get("/production/board").status_code == 403


def test_portal_without_linked_contact(login):
    r = login().get("/production/portal")
    assert r.status_code == 404
    assert r.get_json()["error"] == "No author profile is linked to this account"


# ---------- Tasks ----------
def test_task_assignment_emails_vendor(login, factory, outbox):
    vendor = factory.contact("Pat", "Printer", email="pat@print.example", roles=["vendor"])
    pid = factory.project()
    r = login().post(
        f"/production/projects/{pid}/tasks",
        json={"name": "Print run", "task_type": "printing", "vendor_id": vendor, "due_date": NEXT_MONTH},
    )
    assert r.status_code == 201, r.get_json()
    body = r.get_json()
    assert body["email_sent"] is True
    assert body["email_warning"] is None
    assert body["data"]["vendor_name"] == "Pat Printer"
    assert body["data"]["status"] == "pending"

    [msg] = outbox
    assert msg["To"] == "pat@print.example"
    assert msg["Subject"] == "New production task: Print run"
    assert "The Long Draft" in msg.get_content()


def test_task_without_vendor_warns(login, factory, outbox):
    pid = factory.project()
    body = login().post(f"/production/projects/{pid}/tasks", json={"name": "Cover concept", "task_type": "design"}).get_json()
    assert body["email_sent"] is False
    assert body["email_warning"] == "No vendor assigned"
    assert outbox == []


def test_mail_outage_does_not_fail_task(login, factory, outbox):
    vendor = factory.contact("Pat", "Printer", email="pat@print.example", roles=["vendor"])
    pid = factory.project()
    outbox.fail = True
    r = login().post(f"/production/projects/{pid}/tasks", json={"name": "Print run", "vendor_id": vendor})
    assert r.status_code == 201
    body = r.get_json()
    assert body["email_sent"] is False
    assert body["email_warning"].startswith("Email delivery failed")


def test_task_validation(login, factory):
    author = factory.contact("Ann", "Author", roles=["author"])
    pid = factory.project()
    client = login()

    r = client.post(f"/production/projects/{pid}/tasks", json={"name": "", "task_type": "binding"})
    assert r.status_code == 400
    assert r.get_json()["errors"] == [
        "Name is required",
        "Invalid task type. Must be one of: editing, design, proofing, printing, other",
    ]

    r = client.post(f"/production/projects/{pid}/tasks", json={"name": "Edit", "vendor_id": author})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid vendor ID"


def test_task_update_emails_only_on_vendor_change(login, factory, outbox):
    first = factory.contact("Pat", "Printer", email="pat@print.example", roles=["vendor"])
    second = factory.contact("Sam", "Stitcher", email="sam@bind.example", roles=["vendor"])
    pid = factory.project()
    client = login()
    task_id = client.post(f"/production/projects/{pid}/tasks", json={"name": "Bind", "vendor_id": first}).get_json()["data"]["id"]
    assert len(outbox) == 1

    body = client.patch(f"/production/tasks/{task_id}", json={"notes": "Cloth cover"}).get_json()
    assert body["email_sent"] is False and body["email_warning"] is None
    assert len(outbox) == 1

    body = client.patch(f"/production/tasks/{task_id}", json={"vendor_id": second}).get_json()
    assert body["email_sent"] is True
    assert outbox[-1]["To"] == "sam@bind.example"


def test_task_status_transitions(login, factory):
    pid = factory.project()
    client = login()
    task_id = client.post(f"/production/projects/{pid}/tasks", json={"name": "Edit"}).get_json()["data"]["id"]

    r = client.post(f"/production/tasks/{task_id}/status", json={"status": "completed"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Cannot transition from Pending to Completed"

    assert client.post(f"/production/tasks/{task_id}/status", json={"status": "in-progress"}).status_code == 200
    r = client.post(f"/production/tasks/{task_id}/status", json={"status": "completed"})
    assert r.get_json()["data"]["status"] == "completed"

    card = client.get("/production/board").get_json()["data"]["stages"]["manuscript_received"][0]
    assert card["task_stats"] == {"total": 1, "completed": 1}


def test_delete_task(login, factory):
    pid = factory.project()
    client = login()
    task_id = client.post(f"/production/projects/{pid}/tasks", json={"name": "Edit"}).get_json()["data"]["id"]
    assert client.delete(f"/production/tasks/{task_id}").status_code == 200
    assert client.get(f"/production/projects/{pid}").get_json()["data"]["tasks"] == []
    assert client.patch(f"/production/tasks/{task_id}", json={"notes": "x"}).status_code == 404


def test_non_string_inputs_rejected(login, factory):
    pid = factory.project()
    client = login()

    r = client.post(f"/production/projects/{pid}/stage", json={"stage": 3})
    assert r.status_code == 400
    assert r.get_json()["error"] == "stage must be a string"

    r = client.post(f"/production/projects/{pid}/tasks", json={"name": 5, "task_type": "editing"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "name must be a string"

    r = client.post("/titles/", json={"name": ["Dune"]})
    assert r.status_code == 400
    assert r.get_json()["error"] == "name must be a string"
