import itertools
import typing as ty
from datetime import datetime, timedelta, timezone

import pytest

from thds.k8slock import K8sLock
from thds.k8slock.errors import LeaseConflictError, LeaseNotFoundError
from thds.k8slock.types import LeasePatch, LeaseRecord

LEASE = "test-lease"
NAMESPACE = "test-ns"
ME = "me"
START = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Time only moves when somebody sleeps."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now
        self.sleeps: ty.List[float] = list()
        self.on_sleep: ty.List[ty.Callable[[], ty.Any]] = list()

    def __call__(self) -> datetime:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)
        for hook in self.on_sleep:
            hook()


class FakeLeaseStore:
    """An in-memory API server for Leases, with the same optimistic concurrency."""

    def __init__(self) -> None:
        self.leases: ty.Dict[ty.Tuple[str, str], LeaseRecord] = dict()
        self._versions = itertools.count(1000)
        self.reads: ty.List[ty.Tuple[str, str]] = list()
        self.creates: ty.List[ty.Tuple[str, str, ty.Dict[str, str]]] = list()
        self.updates: ty.List[ty.Tuple[str, LeasePatch]] = list()
        self.read_error: ty.Optional[Exception] = None
        self.update_error: ty.Optional[Exception] = None
        self.before_update: ty.List[ty.Callable[[], ty.Any]] = list()
        self.create_race: ty.Optional[LeaseRecord] = None

    def _next_version(self) -> str:
        return str(next(self._versions))

    def put(self, name: str = LEASE, namespace: str = NAMESPACE, **spec: ty.Any) -> LeaseRecord:
        lease = LeaseRecord(name, namespace, self._next_version(), **spec)
        self.leases[(namespace, name)] = lease
        return lease

    def bump(self, name: str = LEASE, namespace: str = NAMESPACE, **spec: ty.Any) -> LeaseRecord:
        """Somebody else wrote the Lease."""
        current = self.leases[(namespace, name)]
        lease = current._replace(resource_version=self._next_version(), **spec)
        self.leases[(namespace, name)] = lease
        return lease

    def read(self, name: str, namespace: str) -> LeaseRecord:
        self.reads.append((name, namespace))
        if self.read_error:
            raise self.read_error
        try:
            return self.leases[(namespace, name)]
        except KeyError:
            raise LeaseNotFoundError(name, namespace)

    def create(self, name: str, namespace: str, labels: ty.Mapping[str, str]) -> LeaseRecord:
        self.creates.append((name, namespace, dict(labels)))
        if self.create_race:
            self.leases[(namespace, name)] = self.create_race
            raise LeaseConflictError(name, namespace)
        return self.put(name, namespace, labels=dict(labels))

    def update(
        self,
        name: str,
        namespace: str,
        resource_version: str,
        spec: LeasePatch,
        labels: ty.Mapping[str, str],
    ) -> LeaseRecord:
        self.updates.append((resource_version, dict(spec)))  # type: ignore
        for hook in self.before_update:
            hook()
        if self.update_error:
            raise self.update_error
        current = self.leases[(namespace, name)]
        if current.resource_version != resource_version:
            raise LeaseConflictError(name, namespace, resource_version)
        lease = current._replace(
            resource_version=self._next_version(),
            holder_identity=spec["holderIdentity"],
            lease_duration_seconds=spec["leaseDurationSeconds"],
            renew_time=spec["renewTime"],
            acquire_time=spec.get("acquireTime", current.acquire_time),
            lease_transitions=spec.get("leaseTransitions", current.lease_transitions),
            labels={**current.labels, **labels},
        )
        self.leases[(namespace, name)] = lease
        return lease

    def current(self, name: str = LEASE, namespace: str = NAMESPACE) -> LeaseRecord:
        return self.leases[(namespace, name)]


class CapturedSpawn:
    """Holds on to the renewal loop instead of starting a thread, so tests can run it."""

    def __init__(self) -> None:
        self.targets: ty.List[ty.Callable[[], None]] = list()

    def __call__(self, target: ty.Callable[[], None]) -> None:
        self.targets.append(target)

    def run(self) -> None:
        assert len(self.targets) == 1, self.targets
        self.targets.pop()()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeLeaseStore:
    return FakeLeaseStore()


@pytest.fixture
def spawn() -> CapturedSpawn:
    return CapturedSpawn()


@pytest.fixture
def make_lock(
    store: FakeLeaseStore, clock: FakeClock, spawn: CapturedSpawn
) -> ty.Callable[..., K8sLock]:
    def _make_lock(**kwargs: ty.Any) -> K8sLock:
        kwargs.setdefault("lease_name", LEASE)
        kwargs.setdefault("namespace", NAMESPACE)
        kwargs.setdefault("holder_identity", ME)
        return K8sLock(store=store, clock=clock, sleep=clock.sleep, spawn=spawn, **kwargs)

    return _make_lock
