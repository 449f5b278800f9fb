"""
DNS Failover Services

Health probing, failover decisions and DNS record reconciliation.
"""

from .addressing import AddressFamily, address_equal
from .decision import Decision, decide
from .models import AdvertisedState, Node, ProbeResult
from .prober import Prober
from .record_store import CloudflareRecordStore, RecordStore, ZoneRecord
from .synchronizer import RecordSynchronizer, SyncAction, SyncResult
from .watcher import FailoverWatcher

__all__ = [
    'AddressFamily', 'address_equal', 'Decision', 'decide', 'AdvertisedState',
    'Node', 'ProbeResult', 'Prober', 'CloudflareRecordStore', 'RecordStore',
    'ZoneRecord', 'RecordSynchronizer', 'SyncAction', 'SyncResult', 'FailoverWatcher',
]
