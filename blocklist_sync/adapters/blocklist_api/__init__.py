"""Remote blocklist API adapter and reconciliation engine."""

from blocklist_sync.adapters.blocklist_api.client import BlocklistApiClient
from blocklist_sync.adapters.blocklist_api.sync.service import BlocklistSyncService

__all__ = ["BlocklistApiClient", "BlocklistSyncService"]
