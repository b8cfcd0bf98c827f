"""
Schema definitions for the sync engine.
"""
from .base import BaseSchema, FrozenSchema
from .catalog import OptionData, VariantData, ProductData
from .sync import (
    VariantOverride,
    PriceAdjustment,
    DestinationSyncConfig,
    BulkSyncConfig,
    InventoryAssignment,
    AssignmentDecision,
    AllocationSummary,
    LiveInventory,
    LiveVariantInventory,
    EffectivePayload,
    ProductPayload,
    RemoteRef,
    SyncRecord,
    SyncAttempt,
    SyncStats,
    ProductSyncStatus,
    DisconnectSummary,
    SyncResult,
    BulkSyncReport,
)
from .notification import Event, NotificationItem

__all__ = [
    'BaseSchema', 'FrozenSchema',
    'OptionData', 'VariantData', 'ProductData',
    'VariantOverride', 'PriceAdjustment', 'DestinationSyncConfig', 'BulkSyncConfig',
    'InventoryAssignment', 'AssignmentDecision', 'AllocationSummary', 'LiveInventory', 'LiveVariantInventory',
    'EffectivePayload', 'ProductPayload', 'RemoteRef',
    'SyncRecord', 'SyncAttempt', 'SyncStats', 'ProductSyncStatus', 'DisconnectSummary', 'SyncResult', 'BulkSyncReport',
    'Event', 'NotificationItem',
]
