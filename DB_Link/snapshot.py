"""
Whole-store JSON snapshots.

Layout::

    {
      "users": {"1": {...}},
      "forms": {"1": {...}},
      "submissions": {"1": {...}},
      "counters": {"userId": 2, "formId": 1, "submissionId": 1}
    }

Entities are keyed by their stringified id and use the same camelCase names as
the API. A ``storage.json`` written by the earlier single-file version of the
application has this shape and can be imported as is.
"""
import logging
from typing import Any, Dict

from DB_Link.database import Store
from models.schemas import FormFieldSchema, FormOut, SubmissionOut

logger = logging.getLogger(__name__)

COUNTER_KEYS = {
    "users": "userId",
    "forms": "formId",
    "submissions": "submissionId",
}


def export_snapshot(store: Store) -> Dict[str, Any]:
    doc = {
        "users": {
            str(user.id): {"id": user.id, "username": user.username, "password": user.password}
            for user in store.list("users")
        },
        "forms": {
            str(form.id): FormOut.model_validate(form).model_dump(by_alias=True)
            for form in store.list("forms")
        },
        "submissions": {
            str(submission.id): SubmissionOut.model_validate(submission).model_dump(by_alias=True)
            for submission in store.list("submissions")
        },
    }
    doc["counters"] = {key: store.get_counter(kind) for kind, key in COUNTER_KEYS.items()}
    return doc


def import_snapshot(store: Store, doc: Dict[str, Any]) -> Dict[str, int]:
    """Load a snapshot into the store, keeping the ids it was written with.

    Counters end up at least one past the highest imported id. Returns the
    number of entities imported per kind.
    """
    imported = {kind: 0 for kind in COUNTER_KEYS}
    highest = {kind: 0 for kind in COUNTER_KEYS}

    try:
        for key, user in (doc.get("users") or {}).items():
            user_id = int(user.get("id", key))
            store.restore("users", user_id, {
                "username": user["username"],
                "password": user["password"],
            })
            imported["users"] += 1
            highest["users"] = max(highest["users"], user_id)

        for key, form in (doc.get("forms") or {}).items():
            form_id = int(form.get("id", key))
            fields = [FormFieldSchema.model_validate(field).model_dump() for field in form.get("fields") or []]
            store.restore("forms", form_id, {
                "title": form["title"],
                "description": form.get("description"),
                "fields": fields,
                "created_at": form.get("createdAt") or form.get("created_at"),
            })
            imported["forms"] += 1
            highest["forms"] = max(highest["forms"], form_id)

        for key, submission in (doc.get("submissions") or {}).items():
            submission_id = int(submission.get("id", key))
            store.restore("submissions", submission_id, {
                "form_id": int(submission.get("formId", submission.get("form_id"))),
                "data": submission.get("data") or {},
                "drive_file_id": submission.get("driveFileId"),
                "submitted_at": submission.get("submittedAt") or submission.get("submitted_at"),
            })
            imported["submissions"] += 1
            highest["submissions"] = max(highest["submissions"], submission_id)

        counters = doc.get("counters") or {}
        for kind, key in COUNTER_KEYS.items():
            next_id = max(int(counters.get(key, 1)), highest[kind] + 1, store.get_counter(kind))
            store.set_counter(kind, next_id)
        store.commit()
    except Exception:
        store.rollback()
        raise

    logger.info("Imported snapshot: %s", imported)
    return imported
