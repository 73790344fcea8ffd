"""Exception hierarchy for the audit pipeline."""


class AuditcordError(Exception):
    """Base class for errors raised by Auditcord components."""


class AuditLogQueryError(AuditcordError):
    """Reading the guild audit trail failed."""


class AuditLogPermissionDenied(AuditLogQueryError):
    """The bot account lacks the scope to read the guild audit trail."""


class AuditLogUnavailable(AuditLogQueryError):
    """The audit trail API could not be reached or returned an error."""
