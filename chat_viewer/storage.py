import logging
import re
from typing import Generator, Optional

from pydantic import ValidationError
from sqlalchemy import create_engine, event, func, inspect, insert, literal_column, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from chat_viewer.config import settings
from chat_viewer.errors import AuditAppendFailed, ResultDecodingFailed, StorageUnavailable
from chat_viewer.schemas import AuditEntryView, MessageView

logger = logging.getLogger(__name__)

# Display name for audit entries written without an actor
GUEST_DISPLAY_NAME = "Гість"

REQUIRED_TABLES = ("users", "messages", "audit_logs")


def _engine_options(url: str) -> dict:
    """Pool and driver options for the configured database."""
    if url.startswith("sqlite"):
        # check_same_thread=False is required for SQLite to work with FastAPI's threadpool
        options = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///") or ":memory:" in url:
            # One shared connection, otherwise every checkout sees an empty database
            options["poolclass"] = StaticPool
        return options

    options = {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_pre_ping": True,
    }
    if settings.DB_STATEMENT_TIMEOUT_MS > 0:
        options["connect_args"] = {
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"
        }
    return options


def simple_tsvector(config: str, content: Optional[str]) -> str:
    """
    Text form of to_tsvector('simple', content) for SQLite.

    Lower-cased word tokens, each listed once with its 1-based positions.
    """
    positions: dict[str, list[str]] = {}
    for position, token in enumerate(re.findall(r"\w+", (content or "").lower()), start=1):
        positions.setdefault(token, []).append(str(position))
    return " ".join(
        f"'{lexeme}':{','.join(places)}" for lexeme, places in sorted(positions.items())
    )


engine = create_engine(settings.DATABASE_URL, echo=False, **_engine_options(settings.DATABASE_URL))

if engine.dialect.name == "sqlite":
    @event.listens_for(engine, "connect")
    def _configure_sqlite_connection(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        dbapi_connection.create_function("to_tsvector", 2, simple_tsvector)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db() -> None:
    """
    Create the expected tables if they are missing.
    Only used when CREATE_SCHEMA is set; production schemas are managed externally.
    """
    logger.debug(f"Initializing database schema on {engine.url.render_as_string(hide_password=True)}")
    try:
        # Import models to register them with Base.metadata
        from chat_viewer import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database schema created")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def dispose_engine() -> None:
    """Close every pooled connection. Called at shutdown."""
    engine.dispose()
    logger.info("Database connection pool disposed")


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and the expected tables exist.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        inspector = inspect(engine)
        missing = [name for name in REQUIRED_TABLES if not inspector.has_table(name)]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Store
# =============================================================================

class Store:
    """
    The database operations the chat viewer needs, bound to one session.

    Reads raise StorageUnavailable when a statement cannot be executed and
    ResultDecodingFailed when a row cannot be projected. Writes commit before
    returning and roll the session back on failure.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_messages_by_chat(self, chat_id: int) -> list[MessageView]:
        """
        Messages of a chat joined with their sender's name, oldest first.
        Messages whose sender has no users row are left out.
        """
        from chat_viewer.models import Message, User

        logger.info(f"Listing messages for chat {chat_id}")
        stmt = (
            select(
                Message.id,
                User.username.label("sender"),
                Message.content,
                Message.sent_at,
            )
            .join(User, User.id == Message.sender_id)
            .where(Message.chat_id == chat_id)
            .order_by(Message.sent_at.asc(), Message.id.asc())
        )
        rows = self._fetch(stmt)
        messages = self._project(rows, MessageView)
        logger.debug(f"Chat {chat_id}: {len(messages)} messages")
        return messages

    def insert_message(self, sender_id: int, chat_id: int, content: str) -> int:
        """
        Insert a message and its search vector in one statement.

        Returns:
            The identifier assigned by the database.
        """
        from chat_viewer.models import Message

        logger.info(f"Inserting message: sender={sender_id}, chat={chat_id}")
        stmt = (
            insert(Message)
            .values(
                sender_id=sender_id,
                chat_id=chat_id,
                content=content,
                full_text_search=func.to_tsvector(literal_column("'simple'"), content),
            )
            .returning(Message.id)
        )
        try:
            message_id = self.db.execute(stmt).scalar_one()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to insert message for chat {chat_id}: {e}")
            raise StorageUnavailable(str(e)) from e

        logger.info(f"Message {message_id} stored in chat {chat_id}")
        return message_id

    def insert_audit_entry(
        self,
        action: str,
        actor_id: Optional[int],
        target_type: str,
        target_id: int,
    ) -> None:
        """
        Append one audit row stamped with the database clock.

        Raises:
            AuditAppendFailed: the row could not be written. The session is
                rolled back so the caller can keep using it.
        """
        from chat_viewer.models import audit_logs

        logger.debug(f"Appending audit entry: {action} {target_type}={target_id} actor={actor_id}")
        stmt = insert(audit_logs).values(
            action=action,
            user_id=actor_id,
            target_type=target_type,
            target_id=target_id,
            created_at=func.now(),
        )
        try:
            self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to append audit entry {action} {target_type}={target_id}: {e}")
            raise AuditAppendFailed(str(e)) from e

    def list_recent_audit_entries(self, limit: int = 50) -> list[AuditEntryView]:
        """
        Most recent audit entries first, with the actor's name resolved.
        Entries without an actor show the guest display name.
        """
        from chat_viewer.models import User, audit_logs

        logger.info(f"Listing {limit} most recent audit entries")
        stmt = (
            select(
                audit_logs.c.action,
                func.coalesce(User.username, GUEST_DISPLAY_NAME).label("username"),
                audit_logs.c.target_type,
                audit_logs.c.target_id,
                audit_logs.c.created_at,
            )
            .select_from(audit_logs)
            .outerjoin(User, User.id == audit_logs.c.user_id)
            .order_by(audit_logs.c.created_at.desc())
            .limit(limit)
        )
        rows = self._fetch(stmt)
        return self._project(rows, AuditEntryView)

    def _fetch(self, stmt) -> list:
        try:
            return self.db.execute(stmt).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Query failed: {e}")
            raise StorageUnavailable(str(e)) from e
        except (ValueError, TypeError) as e:
            # Raised by result processors, e.g. an unparseable timestamp
            self.db.rollback()
            logger.error(f"Failed to read result rows: {e}")
            raise ResultDecodingFailed(str(e)) from e

    @staticmethod
    def _project(rows: list, model):
        try:
            return [model.model_validate(row, from_attributes=True) for row in rows]
        except ValidationError as e:
            logger.error(f"Failed to project {model.__name__} row: {e}")
            raise ResultDecodingFailed(str(e)) from e
