"""
Audit trail writer.

The audit log is observational: a failed append is logged and counted but
never fails the operation that triggered it.
"""

import logging
from typing import Optional

from chat_viewer.errors import AuditAppendFailed
from chat_viewer.metrics import record_audit_append

logger = logging.getLogger(__name__)

# Actions
VIEW_MESSAGES = "view_messages"
ADD_MESSAGE = "add_message"

# Target kinds
TARGET_CHAT = "chat"
TARGET_MESSAGE = "message"


class AuditWriter:
    """Appends audit entries through a store, swallowing append failures."""

    def __init__(self, store):
        self.store = store

    def record(
        self,
        action: str,
        actor_id: Optional[int],
        target_type: str,
        target_id: int,
    ) -> bool:
        """
        Append one audit entry.

        Returns:
            True if the entry was written, False if the append failed.
        """
        try:
            self.store.insert_audit_entry(action, actor_id, target_type, target_id)
        except AuditAppendFailed as e:
            logger.warning(
                f"Audit append failed: {action} {target_type}={target_id}: {e}",
                extra={"audit_action": action, "target_type": target_type, "target_id": target_id},
            )
            record_audit_append(action, "failed")
            return False

        record_audit_append(action, "ok")
        return True
