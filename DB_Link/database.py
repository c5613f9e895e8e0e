"""
The persistent store.

``Store`` is a repository over the SQLAlchemy session handed to it; routes get
one per request through ``get_store``. Every public write runs in its own
transaction and ids come from the ``counters`` table inside that same
transaction, so ids are never handed out twice and never reused after a delete.
"""
import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from errors import NotFound, ValidationError
from models.models import Counter, Field, Form, Submission, Users
from models.models import Session as SessionRecord
from models.session import Base, Session_local, engine

logger = logging.getLogger(__name__)

KINDS = {
    "users": Users,
    "forms": Form,
    "submissions": Submission,
}

NOT_FOUND_MESSAGES = {
    "users": "User not found",
    "forms": "Form not found",
    "submissions": "Submission not found",
}


def create_tables():
    Base.metadata.create_all(bind=engine)


def drop_tables():
    Base.metadata.drop_all(bind=engine)


def get_db():
    db = Session_local()
    try:
        yield db
    finally:
        db.close()


dp_dependency = Annotated[Session, Depends(get_db)]


class Store:
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _model(kind: str):
        try:
            return KINDS[kind]
        except KeyError:
            raise ValueError(f"unknown entity kind '{kind}'") from None

    def _next_id(self, kind: str) -> int:
        counter = (
            self.db.query(Counter)
            .filter(Counter.kind == kind)
            .with_for_update()
            .first()
        )
        if counter is None:
            counter = Counter(kind=kind, next_id=1)
            self.db.add(counter)
        new_id = counter.next_id
        counter.next_id = new_id + 1
        return new_id

    def _apply(self, entity, payload: Dict[str, Any]) -> None:
        model = type(entity)
        for key, value in payload.items():
            if key == "id":
                continue
            if model is Form and key == "fields":
                if entity.fields:
                    # flush the removals first so re-used field ids don't collide
                    entity.fields = []
                    self.db.flush()
                entity.fields = [
                    Field(
                        id=field["id"],
                        form_id=entity.id,
                        position=position,
                        type=field["type"],
                        label=field.get("label", ""),
                        required=bool(field.get("required", False)),
                        options=field.get("options"),
                    )
                    for position, field in enumerate(value or [])
                ]
                continue
            if not hasattr(model, key):
                raise ValidationError(f"Unknown attribute '{key}' for {model.__tablename__}")
            setattr(entity, key, value)

    def _finish(self, entity, commit: bool):
        if commit:
            self.db.commit()
            self.db.refresh(entity)
        else:
            self.db.flush()
        return entity

    def get(self, kind: str, entity_id: int):
        return self.db.get(self._model(kind), entity_id)

    def list(self, kind: str) -> List[Any]:
        model = self._model(kind)
        return self.db.query(model).order_by(model.id).all()

    def create(self, kind: str, payload: Dict[str, Any], commit: bool = True):
        model = self._model(kind)
        entity = model(id=self._next_id(kind))
        self._apply(entity, payload)
        self.db.add(entity)
        logger.debug("created %s %s", kind, entity.id)
        return self._finish(entity, commit)

    def update(self, kind: str, entity_id: int, partial: Dict[str, Any], commit: bool = True):
        entity = self.get(kind, entity_id)
        if entity is None:
            raise NotFound(NOT_FOUND_MESSAGES[kind])
        self._apply(entity, partial)
        logger.debug("updated %s %s", kind, entity_id)
        return self._finish(entity, commit)

    def delete(self, kind: str, entity_id: int) -> None:
        entity = self.get(kind, entity_id)
        if entity is None:
            raise NotFound(NOT_FOUND_MESSAGES[kind])
        self.db.delete(entity)
        self.db.commit()
        logger.debug("deleted %s %s", kind, entity_id)

    def restore(self, kind: str, entity_id: int, payload: Dict[str, Any]):
        """Insert an entity under an id chosen by the caller (snapshot import)."""
        model = self._model(kind)
        entity = self.db.get(model, entity_id)
        if entity is None:
            entity = model(id=entity_id)
            self.db.add(entity)
        self._apply(entity, payload)
        self.db.flush()
        return entity

    def get_counter(self, kind: str) -> int:
        counter = self.db.get(Counter, kind)
        return counter.next_id if counter else 1

    def set_counter(self, kind: str, next_id: int) -> None:
        counter = self.db.get(Counter, kind)
        if counter is None:
            self.db.add(Counter(kind=kind, next_id=next_id))
        else:
            counter.next_id = next_id

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    # users

    def get_user_by_username(self, username: str) -> Optional[Users]:
        return self.db.query(Users).filter(Users.username == username).first()

    # submissions

    def list_submissions(self, form_id: int, offset: int = 0, limit: Optional[int] = None):
        query = (
            self.db.query(Submission)
            .filter(Submission.form_id == form_id)
            .order_by(Submission.id)
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_submissions(self, form_id: int) -> int:
        return self.db.query(Submission).filter(Submission.form_id == form_id).count()

    # server-side sessions

    def create_session(self, user_id: int, session_token: str, expires_at: datetime) -> SessionRecord:
        # expired rows that were never presented again are dropped here
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        self.db.query(SessionRecord).filter(SessionRecord.expires_at <= now).delete(synchronize_session=False)
        record = SessionRecord(user_id=user_id, session_token=session_token, expires_at=expires_at)
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_session(self, session_token: str) -> Optional[SessionRecord]:
        return (
            self.db.query(SessionRecord)
            .filter(SessionRecord.session_token == session_token)
            .first()
        )

    def delete_session(self, session_token: str) -> bool:
        record = self.get_session(session_token)
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        return True


def get_store(db: dp_dependency) -> Store:
    return Store(db)


store_dependency = Annotated[Store, Depends(get_store)]
