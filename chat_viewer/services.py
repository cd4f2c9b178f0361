"""
Message and audit-log services.

Each service takes its store (and audit writer) at construction so tests can
substitute either one.
"""

import logging

from chat_viewer.audit import ADD_MESSAGE, TARGET_CHAT, TARGET_MESSAGE, VIEW_MESSAGES, AuditWriter
from chat_viewer.metrics import record_message_added
from chat_viewer.schemas import AuditEntryView, MessageView

logger = logging.getLogger(__name__)


class MessageService:
    """Lists and creates chat messages, auditing each operation."""

    def __init__(self, store, audit: AuditWriter):
        self.store = store
        self.audit = audit

    def view_chat(self, chat_id: int) -> list[MessageView]:
        """
        Return the messages of a chat, oldest first, and record the view.

        Store errors propagate and no audit entry is written for them.
        """
        messages = self.store.list_messages_by_chat(chat_id)
        self.audit.record(VIEW_MESSAGES, None, TARGET_CHAT, chat_id)
        return messages

    def add_message(self, sender_id: int, chat_id: int, content: str) -> int:
        """
        Store a message and record who added it.

        The insert is committed before the audit entry is appended, so an
        audit entry never refers to a message that is not visible.

        Returns:
            The new message identifier.
        """
        message_id = self.store.insert_message(sender_id, chat_id, content)
        record_message_added()
        self.audit.record(ADD_MESSAGE, sender_id, TARGET_MESSAGE, message_id)
        return message_id


class LogService:
    """Reads the tail of the audit log. Reading it is not itself audited."""

    def __init__(self, store, limit: int = 50):
        self.store = store
        self.limit = limit

    def recent_tail(self) -> list[AuditEntryView]:
        entries = self.store.list_recent_audit_entries(limit=self.limit)
        logger.debug(f"Audit tail: {len(entries)} entries")
        return entries
