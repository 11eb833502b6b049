from quotedesk.models.record import AuditLogRecord, DocumentRecord, Notification

__all__ = [
    "AuditLogRecord",
    "DocumentRecord",
    "Notification",
]
