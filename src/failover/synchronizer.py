"""
Record Synchronizer

Reconciles a switch intent against the remote record store for one address
family at a time. Records are re-read right before every decision to write,
writes are gated by the anchor record's cooldown, and every create/update is
verified against the content the store echoes back.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from .addressing import ANCHOR_NAME, AddressFamily, address_equal, record_fqdn
from .errors import (
    CooldownError,
    FailoverError,
    ReconcileError,
    RecordNotFoundError,
    SourceMismatchError,
    WriteVerificationError,
)
from .record_store import RecordStore, ZoneRecord

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(minutes=10)


class LookupStatus(Enum):
    """Structural outcome of loading the records of one family"""
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class RecordLookup:
    """Records loaded for a list of names, keyed by name in request order"""
    status: LookupStatus
    records: Dict[str, ZoneRecord] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)
    error: Optional[FailoverError] = None

    @property
    def anchor(self) -> Optional[ZoneRecord]:
        """Anchor record, falling back to the most recently modified one"""
        if ANCHOR_NAME in self.records:
            return self.records[ANCHOR_NAME]
        if not self.records:
            return None
        return max(self.records.values(), key=lambda r: r.last_modified)


class SyncAction(Enum):
    """What a reconciliation did to the record store"""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    NOOP = "noop"


@dataclass
class SyncResult:
    """Outcome of a successful reconciliation"""
    family: AddressFamily
    action: SyncAction
    content: str = ""
    names: List[str] = field(default_factory=list)


def normalize_names(names: Sequence[str]) -> List[str]:
    """Drop blanks and duplicates while keeping the caller's order"""
    result = []
    for name in names:
        name = name.strip()
        if name and name not in result:
            result.append(name)
    if ANCHOR_NAME not in result:
        raise ValueError(f"record names must include the anchor {ANCHOR_NAME!r}")
    return result


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordSynchronizer:
    """
    Applies switch intents to a zone

    The store, zone and clock are injected so a synchronizer holds no state
    between calls besides its configuration.
    """

    def __init__(
        self,
        store: RecordStore,
        zone_id: str,
        domain: str,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.zone_id = zone_id
        self.domain = domain
        self.cooldown = cooldown
        self.clock = clock

    def load(self, names: Sequence[str], family: AddressFamily) -> RecordLookup:
        """Read the current records for ``names``; store errors become an ERROR outcome"""
        records: Dict[str, ZoneRecord] = {}
        missing: List[str] = []

        for name in names:
            fqdn = record_fqdn(name, self.domain)
            try:
                found = self.store.list_records(self.zone_id, fqdn, family)
            except FailoverError as e:
                logger.error(f"Failed to load {family.record_type} records for {fqdn}: {e}")
                return RecordLookup(status=LookupStatus.ERROR, error=e)

            if not found:
                missing.append(name)
                continue
            if len(found) > 1:
                logger.warning(
                    f"{len(found)} {family.record_type} records for {fqdn}, using {found[0].id}"
                )
            records[name] = found[0]

        if not records:
            return RecordLookup(status=LookupStatus.NOT_FOUND, missing=missing)
        return RecordLookup(status=LookupStatus.FOUND, records=records, missing=missing)

    def reconcile(
        self,
        names: Sequence[str],
        source_address: str,
        target_address: str,
        family: AddressFamily,
    ) -> SyncResult:
        """
        Move the records of ``family`` to ``target_address``.

        Args:
            names: Record names to keep in sync, ``@`` included
            source_address: Address the caller believes is published (IPv4 only)
            target_address: New content, empty to remove the records
            family: Address family to reconcile

        Returns:
            SyncResult describing the applied change

        Raises:
            RecordStoreError: The store could not be read or written
            RecordNotFoundError: A records are missing
            SourceMismatchError: The anchor no longer holds ``source_address``
            CooldownError: The anchor changed less than the cooldown ago
            WriteVerificationError: The store did not apply a write
        """
        names = normalize_names(names)
        lookup = self.load(names, family)

        if lookup.status is LookupStatus.ERROR:
            raise lookup.error

        if lookup.status is LookupStatus.NOT_FOUND:
            if family is AddressFamily.IPV4:
                raise RecordNotFoundError(f"no A records found for {self.domain}")
            if not target_address:
                return SyncResult(family=family, action=SyncAction.NOOP)
            created = self._create(names, target_address, family)
            return SyncResult(
                family=family, action=SyncAction.CREATED, content=target_address, names=created
            )

        anchor = lookup.anchor

        if family is AddressFamily.IPV4:
            if lookup.missing:
                raise RecordNotFoundError(
                    f"no A records found for {', '.join(lookup.missing)}"
                )
            if source_address and not address_equal(anchor.content, source_address):
                raise SourceMismatchError(source_address, anchor.content)

        if not target_address:
            deleted = self._delete(lookup.records)
            return SyncResult(family=family, action=SyncAction.DELETED, names=deleted)

        self._check_cooldown(anchor)
        updated = self._update(lookup.records, target_address, family)
        if lookup.missing:
            updated += self._create(lookup.missing, target_address, family)
        return SyncResult(
            family=family, action=SyncAction.UPDATED, content=target_address, names=updated
        )

    def _check_cooldown(self, anchor: ZoneRecord):
        # the anchor gates every name in the set
        age = self.clock() - anchor.last_modified
        if age < self.cooldown:
            raise CooldownError(self.cooldown - age)

    def _create(self, names: Sequence[str], content: str, family: AddressFamily) -> List[str]:
        failures: List[FailoverError] = []
        done: List[str] = []
        for name in names:
            fqdn = record_fqdn(name, self.domain)
            try:
                record = self.store.create_record(self.zone_id, fqdn, family, content)
                self._verify(name, content, record)
            except FailoverError as e:
                failures.append(e)
                continue
            logger.info(f"Created {family.record_type} {fqdn} -> {content}")
            done.append(name)
        self._raise_failures(failures)
        return done

    def _update(
        self, records: Dict[str, ZoneRecord], content: str, family: AddressFamily
    ) -> List[str]:
        failures: List[FailoverError] = []
        done: List[str] = []
        for name, record in records.items():
            try:
                echoed = self.store.update_record(self.zone_id, record, family, content)
                self._verify(name, content, echoed)
            except FailoverError as e:
                failures.append(e)
                continue
            logger.info(f"Updated {family.record_type} {record.name}: {record.content} -> {content}")
            done.append(name)
        self._raise_failures(failures)
        return done

    def _delete(self, records: Dict[str, ZoneRecord]) -> List[str]:
        failures: List[FailoverError] = []
        done: List[str] = []
        for name, record in records.items():
            try:
                self.store.delete_record(self.zone_id, record)
            except FailoverError as e:
                failures.append(e)
                continue
            logger.info(f"Deleted {record.name} ({record.content})")
            done.append(name)
        self._raise_failures(failures)
        return done

    @staticmethod
    def _verify(name: str, expected: str, echoed: ZoneRecord):
        if not address_equal(echoed.content, expected):
            logger.critical(
                f"Record store did not apply {name} -> {expected}, still {echoed.content}"
            )
            raise WriteVerificationError(name, expected, echoed.content)

    @staticmethod
    def _raise_failures(failures: List[FailoverError]):
        if not failures:
            return
        for failure in failures[1:]:
            logger.error(f"Additional record failure: {failure}")
        if len(failures) == 1:
            raise failures[0]
        raise ReconcileError(failures)
