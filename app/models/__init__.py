from .product import Product, ProductVariant, ProductOption
from .destination import Destination
from .sync_config import DestinationSyncSetting, InventoryAllocation
from .sync_ledger import SyncLedgerEntry, SyncHistoryEntry
from .notification import Notification

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Product',
    'ProductVariant',
    'ProductOption',
    'Destination',
    'DestinationSyncSetting',
    'InventoryAllocation',
    'SyncLedgerEntry',
    'SyncHistoryEntry',
    'Notification',
]
