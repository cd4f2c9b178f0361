"""
SQLAlchemy table definitions for the chat database.

The schema is owned outside this service; these definitions describe what
the service expects to find and are only used to create tables for local
runs and tests. For Pydantic row projections, see schemas.py.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Table, Text, func
from sqlalchemy.dialects.postgresql import TSVECTOR

from chat_viewer.storage import Base


class User(Base):
    """
    Chat participant. Read-only from the service's point of view.

    Table: users
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(Text)


class Message(Base):
    """
    A message posted to a chat.

    Table: messages
    Primary Key: id (assigned by the database)
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    chat_id = Column(Integer, nullable=False, index=True)
    content = Column(Text, nullable=False)
    sent_at = Column(DateTime, server_default=func.now(), nullable=False)
    # Filled from content on insert; SQLite keeps the tsvector text form
    full_text_search = Column(TSVECTOR().with_variant(Text(), "sqlite"))


# Append-only and without a primary key in the deployed schema, so it is
# mapped as a plain table rather than an ORM class.
audit_logs = Table(
    "audit_logs",
    Base.metadata,
    Column("action", Text, nullable=False),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=True),
    Column("target_type", Text, nullable=False),
    Column("target_id", Integer, nullable=False),
    Column("created_at", DateTime, nullable=False, index=True),
)
