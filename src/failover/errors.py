"""
Failover Errors

Exception taxonomy for the failover controller. Probe failures are not
exceptions at all; everything else surfaces through these classes so the
watch loop can log and count them per family and continue with the next tick.
"""

from datetime import timedelta
from typing import List, Optional


class FailoverError(Exception):
    """Base class for all failover controller errors"""


class ConfigError(FailoverError):
    """Configuration is missing or inconsistent"""


class ResolutionError(FailoverError):
    """The advertised addresses of the domain could not be resolved"""


class RecordStoreError(FailoverError):
    """Transport, authentication or protocol error talking to the record store"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RecordNotFoundError(FailoverError):
    """Records that must exist are missing from the zone"""


class GuardError(FailoverError):
    """A reconciliation guard refused to write"""


class SourceMismatchError(GuardError):
    """The anchor record no longer points at the expected source address"""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"stated IP is {actual or '<empty>'}, expected {expected}")
        self.expected = expected
        self.actual = actual


class CooldownError(GuardError):
    """The anchor record was modified too recently"""

    def __init__(self, remaining: timedelta):
        super().__init__(
            f"record updated recently, {int(remaining.total_seconds())}s of cooldown left"
        )
        self.remaining = remaining


class WriteVerificationError(FailoverError):
    """The record store echoed a different content than was written"""

    def __init__(self, name: str, expected: str, actual: str):
        super().__init__(
            f"set record {name} to {expected} error, still {actual or '<empty>'}"
        )
        self.name = name
        self.expected = expected
        self.actual = actual


class ReconcileError(FailoverError):
    """Several per-record operations failed in one reconciliation"""

    def __init__(self, failures: List[FailoverError]):
        super().__init__(
            f"{len(failures)} record operations failed, first: {failures[0]}"
        )
        self.failures = failures
