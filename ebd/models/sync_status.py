"""Reconciliation state shared by every entity synced with an external provider."""
import enum


class SyncStatus(str, enum.Enum):
    """pending -> processing -> {authorized | approved, rejected, denied, error}."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    AUTHORIZED = 'authorized'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    DENIED = 'denied'
    ERROR = 'error'
