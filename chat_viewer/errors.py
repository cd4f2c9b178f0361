"""
Error taxonomy for the chat viewer.

Route handlers are the boundary: each error is mapped there to an HTTP
status and a short plain-text body. AuditAppendFailed never reaches a client.
"""


class ChatViewerError(Exception):
    """Base class for all chat viewer errors."""


class FormInvalid(ChatViewerError):
    """Request body could not be parsed into the expected form fields."""


class StorageUnavailable(ChatViewerError):
    """Database connectivity or statement execution failed."""


class ResultDecodingFailed(ChatViewerError):
    """A result row could not be projected into its view model."""


class AuditAppendFailed(ChatViewerError):
    """An audit row could not be written."""
