"""
Shared fixtures for the failover controller tests.

FakeRecordStore keeps zone records in memory and stamps writes with a
controllable clock, so cooldown behaviour can be tested without sleeping.
"""

import itertools
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.failover.addressing import AddressFamily
from src.failover.errors import RecordStoreError
from src.failover.models import Node
from src.failover.record_store import RecordStore, ZoneRecord
from src.failover.synchronizer import RecordSynchronizer

DOMAIN = "example.com"
ZONE_ID = "zone-1"
START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeRecordStore(RecordStore):
    """In-memory record store with call tracking and failure injection."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.records: Dict[str, Tuple[str, AddressFamily, ZoneRecord]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_on: Dict[Tuple[str, str], Exception] = {}
        self.echo_override: Optional[str] = None
        self._ids = itertools.count(1)

    def add(self, fqdn: str, family: AddressFamily, content: str,
            modified: Optional[datetime] = None) -> ZoneRecord:
        record = ZoneRecord(
            id=f"rec-{next(self._ids)}",
            name=fqdn,
            content=content,
            last_modified=modified or self.clock() - timedelta(hours=1),
        )
        self.records[record.id] = (fqdn, family, record)
        return record

    def contents(self, family: AddressFamily) -> Dict[str, str]:
        return {
            fqdn: record.content
            for fqdn, fam, record in self.records.values()
            if fam is family
        }

    def _maybe_fail(self, op: str, fqdn: str):
        self.calls.append((op, fqdn))
        error = self.fail_on.get((op, fqdn))
        if error:
            raise error

    def find_zone(self, domain: str) -> str:
        return ZONE_ID

    def list_records(self, zone_id, fqdn, family):
        self._maybe_fail("list", fqdn)
        return [
            record for name, fam, record in self.records.values()
            if name == fqdn and fam is family
        ]

    def create_record(self, zone_id, fqdn, family, content):
        self._maybe_fail("create", fqdn)
        record = self.add(fqdn, family, content, modified=self.clock())
        if self.echo_override is not None:
            return ZoneRecord(record.id, fqdn, self.echo_override, record.last_modified)
        return record

    def update_record(self, zone_id, record, family, content):
        self._maybe_fail("update", record.name)
        if record.id not in self.records:
            raise RecordStoreError("404 Not Found", status=404)
        updated = ZoneRecord(record.id, record.name, content, self.clock())
        self.records[record.id] = (record.name, family, updated)
        if self.echo_override is not None:
            return ZoneRecord(record.id, record.name, self.echo_override, updated.last_modified)
        return updated

    def delete_record(self, zone_id, record):
        self._maybe_fail("delete", record.name)
        if record.id not in self.records:
            raise RecordStoreError("404 Not Found", status=404)
        del self.records[record.id]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return FakeRecordStore(clock)


@pytest.fixture
def synchronizer(store, clock):
    return RecordSynchronizer(store, zone_id=ZONE_ID, domain=DOMAIN, clock=clock)


@pytest.fixture
def nodes():
    return [
        Node(name="A", ipv4="10.0.0.11", ipv6="2001:db8::11"),
        Node(name="B", ipv4="10.0.0.12", ipv6="2001:db8::12"),
        Node(name="C", ipv4="10.0.0.13"),
    ]
