"""Tests for proof versions, approval and correction requests."""
import io
from datetime import datetime

from reportlab.pdfgen import canvas

from app.folio.db import db_session
from app.folio.modules.production import proofs as proof_service
from app.folio.modules.production.models import ProofFile
from app.folio.modules.production.proofs import count_pdf_pages, proof_storage_key


def _pdf(pages=2):
    buf = io.BytesIO()
    c = canvas.Canvas(buf)
    for i in range(pages):
        c.drawString(72, 720, f"Page {i + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


def _upload(client, project_id, data=None, name="proof.pdf", notes=None):
    form = {"file": (io.BytesIO(_pdf() if data is None else data), name, "application/pdf" if name.endswith(".pdf") else "text/plain")}
    if notes:
        form["notes"] = notes
    return client.post(f"/production/projects/{project_id}/proofs", data=form, content_type="multipart/form-data")


def test_page_count():
    assert count_pdf_pages(_pdf(3)) == 3
    assert count_pdf_pages(b"%PDF-1.4 this is not really a pdf") is None


def test_storage_key_shape():
    key = proof_storage_key(1, 7, 3, "Final Interior.PDF", at=datetime(2026, 5, 4, 3, 2, 1))
    assert key == "production/1/7/proofs/v3-20260504030201-Final_Interior.pdf"


def test_upload_proof(login, factory):
    pid = factory.project()
    r = _upload(login(), pid, notes="First pass")
    assert r.status_code == 201, r.get_json()
    proof = r.get_json()["data"]
    assert proof["version"] == 1
    assert proof["page_count"] == 2
    assert proof["approval_status"] == "pending"
    assert proof["mime_type"] == "application/pdf"
    assert proof["notes"] == "First pass"
    assert len(proof["sha256"]) == 64


def test_upload_rejects_non_pdf(login, factory):
    pid = factory.project()
    r = _upload(login(), pid, data=b"hello", name="proof.txt")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Proofs must be PDF files"


def test_upload_requires_file(login, factory):
    pid = factory.project()
    r = login().post(f"/production/projects/{pid}/proofs", data={}, content_type="multipart/form-data")
    assert r.status_code == 400
    assert r.get_json()["error"] == "No file provided"


def test_versions_never_reused(login, factory):
    pid = factory.project()
    client = login()
    _upload(client, pid)
    second = _upload(client, pid).get_json()["data"]
    assert second["version"] == 2

    assert client.delete(f"/production/proofs/{second['id']}").status_code == 200
    third = _upload(client, pid).get_json()["data"]
    assert third["version"] == 3

    proofs = client.get(f"/production/projects/{pid}").get_json()["data"]["proofs"]
    assert [p["version"] for p in proofs] == [3, 1]


def test_unreadable_pdf_still_uploads(login, factory):
    pid = factory.project()
    r = _upload(login(), pid, data=b"%PDF-1.4 truncated")
    assert r.status_code == 201
    assert r.get_json()["data"]["page_count"] is None


def _to_proof_stage(client, project_id):
    for stage in ("editing", "design", "proof"):
        r = client.post(f"/production/projects/{project_id}/stage", json={"stage": stage})
        assert r.status_code == 200, r.get_json()


def test_approve_moves_project_to_print_ready(login, factory):
    pid = factory.project()
    client = login()
    _to_proof_stage(client, pid)
    proof_id = _upload(client, pid).get_json()["data"]["id"]

    r = client.post(f"/production/proofs/{proof_id}/approve", json={"notes": "Looks great"})
    assert r.status_code == 200
    proof = r.get_json()["data"]
    assert proof["approval_status"] == "approved"
    assert proof["approval_notes"] == "Looks great"
    assert proof["approved_at"] is not None

    project = client.get(f"/production/projects/{pid}").get_json()["data"]
    assert project["workflow_stage"] == "print_ready"
    assert project["workflow_stage_history"][-1]["from"] == "proof"
    assert project["workflow_stage_history"][-1]["to"] == "print_ready"

    r = client.post(f"/production/proofs/{proof_id}/approve")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Project must be in proof stage to take approval actions"


def test_approval_actions_need_proof_stage(login, factory, outbox):
    pid = factory.project()
    client = login()
    proof_id = _upload(client, pid).get_json()["data"]["id"]

    r = client.post(f"/production/proofs/{proof_id}/approve")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Project must be in proof stage to take approval actions"

    r = client.post(f"/production/proofs/{proof_id}/corrections", json={"notes": "Fix the running heads."})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Project must be in proof stage to take approval actions"

    project = client.get(f"/production/projects/{pid}").get_json()["data"]
    assert project["workflow_stage"] == "manuscript_received"
    assert project["proofs"][0]["approval_status"] == "pending"
    assert outbox == []


def test_approved_proof_stays_approved_after_moving_back(login, factory):
    pid = factory.project()
    client = login()
    _to_proof_stage(client, pid)
    proof_id = _upload(client, pid).get_json()["data"]["id"]
    client.post(f"/production/proofs/{proof_id}/approve")
    client.post(f"/production/projects/{pid}/stage", json={"stage": "proof"})

    r = client.post(f"/production/proofs/{proof_id}/approve")
    assert r.status_code == 400
    assert r.get_json()["error"] == "This proof has already been approved"


def test_request_corrections_emails_proofing_vendor(login, factory, outbox):
    vendor = factory.contact("Paula", "Proofer", email="paula@proofs.example", roles=["vendor"])
    pid = factory.project()
    client = login()
    client.post(f"/production/projects/{pid}/tasks", json={"name": "Proofread", "task_type": "proofing", "vendor_id": vendor})
    _to_proof_stage(client, pid)
    outbox.clear()
    proof_id = _upload(client, pid).get_json()["data"]["id"]

    r = client.post(f"/production/proofs/{proof_id}/corrections", json={"notes": "too short"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Correction notes must be at least 10 characters"

    r = client.post(f"/production/proofs/{proof_id}/corrections", json={"notes": "Widows on pages 12 and 40."})
    assert r.status_code == 200
    body = r.get_json()
    assert body["data"]["approval_status"] == "corrections_requested"
    assert body["email_sent"] is True
    [msg] = outbox
    assert msg["To"] == "paula@proofs.example"
    assert "Widows on pages 12 and 40." in msg.get_content()

    r = client.post(f"/production/proofs/{proof_id}/approve")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Corrections already requested - upload a new proof version"


def test_corrections_are_flushed_before_vendor_email(login, factory, monkeypatch):
    vendor = factory.contact("Paula", "Proofer", email="paula@proofs.example", roles=["vendor"])
    pid = factory.project()
    client = login()
    client.post(f"/production/projects/{pid}/tasks", json={"name": "Proofread", "task_type": "proofing", "vendor_id": vendor})
    _to_proof_stage(client, pid)
    proof_id = _upload(client, pid).get_json()["data"]["id"]

    seen = []

    def fake_send(to, subject, body, **kwargs):
        # sessions do not autoflush, so this only sees rows already written
        row = db_session().query(ProofFile.approval_status).filter(ProofFile.id == proof_id).scalar()
        seen.append(row)
        return True, "<queued>"

    monkeypatch.setattr(proof_service, "send_email", fake_send)
    r = client.post(f"/production/proofs/{proof_id}/corrections", json={"notes": "Widows on pages 12 and 40."})
    assert r.status_code == 200
    assert seen == ["corrections_requested"]


def test_request_corrections_without_vendor(login, factory, outbox):
    pid = factory.project()
    client = login()
    _to_proof_stage(client, pid)
    proof_id = _upload(client, pid).get_json()["data"]["id"]
    body = client.post(f"/production/proofs/{proof_id}/corrections", json={"notes": "Fix the running heads."}).get_json()
    assert body["email_sent"] is False
    assert body["email_warning"] == "No proofing vendor assigned"
    assert outbox == []


def test_update_notes_and_download(login, factory):
    pid = factory.project()
    client = login()
    data = _pdf(1)
    proof_id = _upload(client, pid, data=data).get_json()["data"]["id"]

    r = client.patch(f"/production/proofs/{proof_id}", json={"notes": "Use this one"})
    assert r.get_json()["data"]["notes"] == "Use this one"

    url = client.get(f"/production/proofs/{proof_id}/download-url").get_json()["data"]["url"]
    assert url.endswith(f"/production/proofs/{proof_id}/file")
    r = client.get(url)
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data == data


def test_finance_cannot_touch_proofs(login, factory):
    pid = factory.project()
    r = _upload(login("finance@acme.test"), pid)
    assert r.status_code == 403
