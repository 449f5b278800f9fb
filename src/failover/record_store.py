"""
Record Store

Client side of the DNS provider's record management API. ``RecordStore``
is the interface the synchronizer depends on; ``CloudflareRecordStore``
implements it over the Cloudflare v4 REST API with ``requests``.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import requests

from .addressing import AddressFamily
from .errors import RecordStoreError

logger = logging.getLogger(__name__)

CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"

_FRACTION = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class ZoneRecord:
    """A DNS record as held by the record store"""
    id: str
    name: str
    content: str
    last_modified: datetime


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime"""
    text = value.strip().replace("Z", "+00:00").replace("z", "+00:00")
    # fromisoformat accepts at most microsecond precision
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class RecordStore(ABC):
    """Remote DNS record store"""

    @abstractmethod
    def find_zone(self, domain: str) -> str:
        """Return the zone id that serves ``domain``"""

    @abstractmethod
    def list_records(self, zone_id: str, fqdn: str, family: AddressFamily) -> List[ZoneRecord]:
        """Return the records of ``family`` named ``fqdn`` (possibly none)"""

    @abstractmethod
    def create_record(
        self, zone_id: str, fqdn: str, family: AddressFamily, content: str
    ) -> ZoneRecord:
        """Create a record and return it as stored"""

    @abstractmethod
    def update_record(
        self, zone_id: str, record: ZoneRecord, family: AddressFamily, content: str
    ) -> ZoneRecord:
        """Point an existing record at ``content`` and return it as stored"""

    @abstractmethod
    def delete_record(self, zone_id: str, record: ZoneRecord) -> None:
        """Delete a record"""


@dataclass
class CloudflareCredentials:
    """Cloudflare API credentials: global key + email, or a scoped token"""
    email: str = ""
    api_key: str = ""
    api_token: str = ""
    zone_id: str = ""
    timeout_seconds: float = 15.0

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        else:
            headers["X-Auth-Email"] = self.email
            headers["X-Auth-Key"] = self.api_key
        return headers

    @property
    def configured(self) -> bool:
        return bool(self.api_token or (self.email and self.api_key))


class CloudflareRecordStore(RecordStore):
    """
    Cloudflare DNS record store

    Every request carries the account credentials and an explicit timeout.
    Non-2xx responses and unsuccessful API envelopes raise RecordStoreError.
    """

    def __init__(
        self,
        credentials: CloudflareCredentials,
        session: Optional[requests.Session] = None,
        base_url: str = CLOUDFLARE_API_BASE,
    ):
        self.credentials = credentials
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self.credentials.headers(),
                timeout=self.credentials.timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            raise RecordStoreError(f"{method} {path}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise RecordStoreError(
                f"{method} {path}: {_status_text(response)}",
                status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RecordStoreError(f"{method} {path}: invalid JSON response") from e

        if not isinstance(body, dict) or body.get("success") is False:
            errors = body.get("errors") if isinstance(body, dict) else None
            raise RecordStoreError(f"{method} {path}: API error {errors}")

        return body.get("result")

    def find_zone(self, domain: str) -> str:
        if self.credentials.zone_id:
            return self.credentials.zone_id

        result = self._request("GET", "/zones", params={"name": domain.rstrip(".")})
        if not isinstance(result, list) or len(result) != 1:
            raise RecordStoreError(f"unknown Cloudflare zone format for {domain}")

        zone_id = result[0].get("id") if isinstance(result[0], dict) else None
        if not zone_id:
            raise RecordStoreError(f"unknown Cloudflare zone format for {domain}")
        logger.info(f"Found zone {zone_id} for {domain}")
        return zone_id

    def list_records(self, zone_id: str, fqdn: str, family: AddressFamily) -> List[ZoneRecord]:
        result = self._request(
            "GET",
            f"/zones/{zone_id}/dns_records",
            params={"type": family.record_type, "name": fqdn, "match": "all"},
        )
        if not isinstance(result, list):
            raise RecordStoreError(f"unexpected record list for {fqdn}")
        return [self._to_record(item, fqdn, require_modified=True) for item in result]

    def create_record(
        self, zone_id: str, fqdn: str, family: AddressFamily, content: str
    ) -> ZoneRecord:
        result = self._request(
            "POST",
            f"/zones/{zone_id}/dns_records",
            payload=self._record_body(fqdn, family, content),
        )
        return self._to_record(result, fqdn)

    def update_record(
        self, zone_id: str, record: ZoneRecord, family: AddressFamily, content: str
    ) -> ZoneRecord:
        result = self._request(
            "PUT",
            f"/zones/{zone_id}/dns_records/{record.id}",
            payload=self._record_body(record.name, family, content),
        )
        return self._to_record(result, record.name)

    def delete_record(self, zone_id: str, record: ZoneRecord) -> None:
        self._request("DELETE", f"/zones/{zone_id}/dns_records/{record.id}")

    @staticmethod
    def _record_body(fqdn: str, family: AddressFamily, content: str) -> Dict[str, Any]:
        return {
            "type": family.record_type,
            "name": fqdn,
            "content": content,
            "proxied": False,
        }

    @staticmethod
    def _to_record(item: Any, fqdn: str = "", require_modified: bool = False) -> ZoneRecord:
        if not isinstance(item, dict):
            raise RecordStoreError("unexpected record format")
        modified = item.get("modified_on")
        if require_modified and not modified:
            raise RecordStoreError(f"record {item.get('id')} has no modification time")
        try:
            last_modified = (
                parse_timestamp(modified) if modified else datetime.now(timezone.utc)
            )
            return ZoneRecord(
                id=item.get("id", ""),
                name=item.get("name") or fqdn,
                content=item.get("content", ""),
                last_modified=last_modified,
            )
        except (TypeError, ValueError) as e:
            raise RecordStoreError(f"unexpected record format: {e}") from e


def _status_text(response: requests.Response) -> str:
    try:
        phrase = HTTPStatus(response.status_code).phrase
    except ValueError:
        phrase = response.reason or "Unknown Status"
    return f"{response.status_code} {phrase}"
