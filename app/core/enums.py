"""
Shared enums and constants used across the application.
"""

from enum import Enum


class PlatformName(str, Enum):
    SHOPIFY = "SHOPIFY"

    @property
    def slug(self):
        return self.value.lower()


class SyncStatus(str, Enum):
    """Lifecycle of a (product, destination) ledger record"""
    NEVER_SYNCED = "never_synced"
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class SyncOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class SyncOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ErrorKind(str, Enum):
    """Why a job failed. Carried on results, ledger records and events."""
    VALIDATION = "validation"
    REMOTE = "remote"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    STALE = "stale"
    CONFLICT = "conflict"
    INTERNAL = "internal"


class PriceAdjustmentType(str, Enum):
    NONE = "none"
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    MARKUP = "markup"
    MARKDOWN = "markdown"


class ProductStatus(str, Enum):
    """Product status values used in both models and schemas"""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class NotificationType(str, Enum):
    STORE = "store"
    PRODUCT = "product"
    SYNC = "sync"
    ERROR = "error"
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"


class SyncEventName(str, Enum):
    STARTED = "sync.started"
    PROGRESS = "sync.progress"
    COMPLETED = "sync.completed"
    DESTINATION_DISCONNECTED = "destination.disconnected"
