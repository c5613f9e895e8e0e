import smtplib
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import main
import notifications
from DB_Link.database import Store
from models.session import Base
from notifications import format_transcript, format_value


def test_contact_form_scenario(client, contact_form, sent_mail):
    form_id = contact_form["id"]

    response = client.post(f"/api/forms/{form_id}/submissions", json={"f1": "Alice"})

    assert response.status_code == 201
    submission = response.json()
    assert submission["formId"] == form_id
    assert submission["data"] == {"f1": "Alice"}
    assert submission["driveFileId"] is None
    assert submission["submittedAt"].endswith("Z")

    assert len(sent_mail) == 1
    message = sent_mail[0]
    assert message["Subject"] == "Contact"
    assert "Name: Alice" in message.get_content().splitlines()


def test_submission_is_public(client, contact_form, sent_mail):
    client.cookies.clear()

    response = client.post(f"/api/forms/{contact_form['id']}/submissions", json={"f1": "Bob"})

    assert response.status_code == 201


def test_submission_to_unknown_form_creates_nothing(client, store, sent_mail):
    response = client.post("/api/forms/42/submissions", json={"f1": "Alice"})

    assert response.status_code == 404
    assert store.list("submissions") == []
    assert sent_mail == []


def test_submission_is_retrievable_with_identical_data(client, contact_form, auth_headers, sent_mail):
    data = {"f1": "Alice", "extra": True}
    created = client.post(f"/api/forms/{contact_form['id']}/submissions", json=data).json()

    response = client.get(f"/api/submissions/{created['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"] == data


def test_transcript_has_one_line_per_form_field(client, auth_headers, sent_mail):
    fields = [
        {"id": "a", "type": "text", "label": "Name", "required": True},
        {"id": "b", "type": "email", "label": "Email", "required": False},
        {"id": "c", "type": "checkbox", "label": "Agree", "required": False},
    ]
    form = client.post("/api/forms", json={"title": "Signup", "fields": fields}, headers=auth_headers).json()

    client.post(f"/api/forms/{form['id']}/submissions", json={"a": "Ann", "c": True, "zzz": "ignored"})

    body = sent_mail[0].get_content()
    transcript = body.split("\n\n", 1)[1].strip().splitlines()
    assert transcript == ["Name: Ann", "Email: ", "Agree: true"]


def test_failed_notification_stores_nothing(client, contact_form, store, monkeypatch):
    def refuse(msg):
        raise smtplib.SMTPServerDisconnected("connection lost")

    monkeypatch.setattr(notifications.settings, "SMTP_HOST", "smtp.test")
    monkeypatch.setattr(notifications, "deliver", refuse)

    response = client.post(f"/api/forms/{contact_form['id']}/submissions", json={"f1": "Alice"})

    assert response.status_code == 500
    assert "notification" in response.json()["detail"].lower()
    assert store.count_submissions(contact_form["id"]) == 0


def test_multiline_title_is_folded_into_subject(client, auth_headers, sent_mail):
    form = {"title": "Contact\nUs", "fields": [{"id": "f1", "type": "text", "label": "Name"}]}
    form_id = client.post("/api/forms", json=form, headers=auth_headers).json()["id"]

    response = client.post(f"/api/forms/{form_id}/submissions", json={"f1": "Alice"})

    assert response.status_code == 201
    assert sent_mail[0]["Subject"] == "Contact Us"
    assert "Name: Alice" in sent_mail[0].get_content()


def test_database_is_writable_while_email_is_sent(tmp_path, monkeypatch):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'forms.db'}",
        connect_args={"check_same_thread": False, "timeout": 0.5},
    )
    Base.metadata.create_all(bind=engine)
    make_session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    submitting, other = make_session(), make_session()
    try:
        store, other_store = Store(submitting), Store(other)
        form = store.create("forms", {
            "title": "Contact",
            "fields": [{"id": "f1", "type": "text", "label": "Name"}],
            "created_at": "2024-01-01T00:00:00.000Z",
        })

        def deliver_while_other_request_writes(msg):
            expires_at = (datetime.now(timezone.utc) + timedelta(hours=1)).replace(tzinfo=None)
            other_store.create_session(1, "concurrent-login", expires_at)
            assert other_store.count_submissions(form.id) == 0

        monkeypatch.setattr(notifications.settings, "SMTP_HOST", "smtp.test")
        monkeypatch.setattr(notifications, "deliver", deliver_while_other_request_writes)

        submission = main.record_submission(store, form.id, {"f1": "Alice"})

        assert submission.data == {"f1": "Alice"}
        assert other_store.get_session("concurrent-login") is not None
        assert other_store.count_submissions(form.id) == 1
    finally:
        submitting.close()
        other.close()
        engine.dispose()


def test_submission_stored_when_smtp_disabled(client, contact_form, store):
    response = client.post(f"/api/forms/{contact_form['id']}/submissions", json={"f1": "Alice"})

    assert response.status_code == 201
    assert store.count_submissions(contact_form["id"]) == 1


def test_submission_body_must_be_an_object(client, contact_form):
    response = client.post(f"/api/forms/{contact_form['id']}/submissions", json=["f1", "Alice"])

    assert response.status_code == 422


def test_list_submissions_is_paginated(client, contact_form, auth_headers, sent_mail):
    for name in ("a", "b", "c"):
        client.post(f"/api/forms/{contact_form['id']}/submissions", json={"f1": name})

    response = client.get(
        f"/api/forms/{contact_form['id']}/submissions",
        params={"page": 2, "limit": 2},
        headers=auth_headers,
    )

    assert response.status_code == 200
    page = response.json()
    assert page["totalCount"] == 3
    assert page["page"] == 2
    assert [s["data"]["f1"] for s in page["submissions"]] == ["c"]


def test_list_submissions_requires_auth(client, contact_form):
    assert client.get(f"/api/forms/{contact_form['id']}/submissions").status_code == 401


def test_submissions_outlive_their_form(client, contact_form, auth_headers, sent_mail):
    created = client.post(f"/api/forms/{contact_form['id']}/submissions", json={"f1": "Alice"}).json()
    client.delete(f"/api/forms/{contact_form['id']}", headers=auth_headers)

    response = client.get(f"/api/submissions/{created['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["formId"] == contact_form["id"]


def test_drive_file_id_can_be_set(client, contact_form, auth_headers, sent_mail):
    created = client.post(f"/api/forms/{contact_form['id']}/submissions", json={"f1": "Alice"}).json()

    response = client.patch(
        f"/api/submissions/{created['id']}",
        json={"driveFileId": "drive-123"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["driveFileId"] == "drive-123"
    assert response.json()["data"] == {"f1": "Alice"}


def test_unknown_submission(client, auth_headers):
    assert client.get("/api/submissions/7", headers=auth_headers).status_code == 404
    assert client.patch("/api/submissions/7", json={"driveFileId": "x"}, headers=auth_headers).status_code == 404


# =============================================================================
# Transcript formatting
# =============================================================================

def test_format_transcript_uses_form_order_and_labels():
    fields = [{"id": "b", "label": "Second"}, {"id": "a", "label": "First"}]

    assert format_transcript(fields, {"a": "1", "b": "2"}) == "Second: 2\nFirst: 1"


def test_format_value():
    assert format_value(None) == ""
    assert format_value(False) == "false"
    assert format_value(3) == "3"
    assert format_value(["x", "y"]) == "x, y"


def test_send_without_smtp_returns_transcript(monkeypatch):
    delivered = []
    monkeypatch.setattr(notifications, "deliver", lambda msg: delivered.append(msg))

    transcript = notifications.send_submission_email("T", {"f1": "v"}, [{"id": "f1", "label": "L"}])

    assert transcript == "L: v"
    assert delivered == []
