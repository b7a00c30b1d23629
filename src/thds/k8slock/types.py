import typing as ty
from datetime import datetime
from types import MappingProxyType


class LeaseRecord(ty.NamedTuple):
    """Our copy of a Lease as of a single read. The backend owns the real thing."""

    name: str
    namespace: str
    resource_version: str
    holder_identity: ty.Optional[str] = None
    renew_time: ty.Optional[datetime] = None
    acquire_time: ty.Optional[datetime] = None
    lease_transitions: ty.Optional[int] = None
    lease_duration_seconds: ty.Optional[int] = None
    labels: ty.Mapping[str, str] = MappingProxyType({})

    def is_expired(self, now: datetime) -> bool:
        return self.renew_time is None or self.renew_time < now


class LeasePatch(ty.TypedDict, total=False):
    """The Lease spec fields we are allowed to write. Anything left out is untouched by the
    strategic merge on the server side.
    """

    holderIdentity: str
    leaseDurationSeconds: int
    renewTime: datetime
    acquireTime: datetime
    leaseTransitions: int


class LeaseStore(ty.Protocol):
    def read(self, name: str, namespace: str) -> LeaseRecord:
        """Raises LeaseNotFoundError."""
        ...  # pragma: no cover

    def create(self, name: str, namespace: str, labels: ty.Mapping[str, str]) -> LeaseRecord:
        """Creates a Lease with an empty spec."""
        ...  # pragma: no cover

    def update(
        self,
        name: str,
        namespace: str,
        resource_version: str,
        spec: LeasePatch,
        labels: ty.Mapping[str, str],
    ) -> LeaseRecord:
        """Raises LeaseConflictError if resource_version is no longer current."""
        ...  # pragma: no cover


class LockStatus(ty.NamedTuple):
    is_locking: bool
