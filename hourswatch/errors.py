"""Error taxonomy for the sync engine."""


class HoursWatchError(Exception):
    """Base class for all hourswatch errors."""


class NoRemoteIdentifier(HoursWatchError):
    """The record has no directory id and can never be synchronized."""

    def __init__(self, record_id: str):
        super().__init__(f"Record {record_id} has no remote identifier")
        self.record_id = record_id


class RemoteFetchFailed(HoursWatchError):
    """The directory lookup failed (network, timeout, not found, malformed payload)."""


class PersistenceFailed(HoursWatchError):
    """The record store could not read or write records."""
