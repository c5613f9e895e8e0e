from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from models.session import Base


class Users(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, index=True, autoincrement=False)
    username = Column(String, unique=True, nullable=False)
    # "<hex scrypt key>.<salt>"
    password = Column(String, nullable=False)

    sessions = relationship('Session', back_populates='user', cascade="all, delete-orphan")


class Session(Base):
    __tablename__ = 'sessions'

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    session_token = Column(String, unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    user = relationship('Users', back_populates='sessions')


class Form(Base):
    __tablename__ = "forms"

    id = Column(Integer, primary_key=True, index=True, autoincrement=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(String, nullable=False)

    fields = relationship(
        "Field",
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="Field.position",
    )


class Field(Base):
    __tablename__ = "form_fields"

    # client generated token, unique within its form
    id = Column(String, primary_key=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, nullable=False)
    type = Column(String, nullable=False)
    label = Column(String, nullable=False, default="")
    required = Column(Boolean, nullable=False, default=False)
    options = Column(JSON, nullable=True)

    form = relationship("Form", back_populates="fields")


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=False)
    # no foreign key: submissions outlive their form
    form_id = Column(Integer, index=True, nullable=False)
    data = Column(JSON, nullable=False)
    drive_file_id = Column(String, nullable=True)
    submitted_at = Column(String, nullable=False)


class Counter(Base):
    __tablename__ = "counters"

    kind = Column(String, primary_key=True)
    next_id = Column(Integer, nullable=False, default=1)
