"""A single attempt to take or keep a Lease.

The Lease's resourceVersion does all the real work here. We read the Lease, decide
whether we are allowed to write it (it has expired, or it is already ours), and then
write it back conditionally on the version we read. If two processes both decide they
are allowed, the API server accepts exactly one of the writes and rejects the other
with a 409, so the loser simply reports that it did not get the lock this time.

A process that sees somebody else holding a still-valid Lease never writes at all,
which keeps a crowd of waiters from hammering the API server.
"""

import typing as ty
from datetime import datetime

from thds.core import log

from .errors import LeaseConflictError, LeaseNotFoundError
from .settings import LockSettings, LockState
from .types import LeasePatch, LeaseRecord, LeaseStore

logger = log.getLogger(__name__)


def _read_or_create(store: LeaseStore, settings: LockSettings) -> LeaseRecord:
    name, namespace = settings.lease_name, settings.namespace
    try:
        return store.read(name, namespace)
    except LeaseNotFoundError:
        if not settings.create_lease_if_not_exist:
            raise
    try:
        # a freshly created Lease has no renewTime, so it is immediately up for grabs.
        return store.create(name, namespace, settings.labels)
    except LeaseConflictError:
        logger.debug("Lease %s/%s was created by someone else - rereading", namespace, name)
        return store.read(name, namespace)


def make_patch(lease: LeaseRecord, settings: LockSettings, now: datetime) -> LeasePatch:
    patch = LeasePatch(
        holderIdentity=settings.holder_identity,
        leaseDurationSeconds=settings.lease_duration_seconds,
        renewTime=now + settings.lease_duration,
    )
    if lease.holder_identity != settings.holder_identity:
        # the lock is changing hands. renewing our own lease must not touch these.
        patch["leaseTransitions"] = (lease.lease_transitions or 0) + 1
        patch["acquireTime"] = now
    return patch


def _our_write_landed(store: LeaseStore, settings: LockSettings, patch: LeasePatch) -> bool:
    # A patch whose response was lost gets retried with the same resourceVersion, and the
    # retry then conflicts with the write it already made. Nobody else writes our
    # identity together with our exact renewTime.
    try:
        lease = store.read(settings.lease_name, settings.namespace)
    except LeaseNotFoundError:
        return False
    return (
        lease.holder_identity == settings.holder_identity
        and lease.renew_time == patch["renewTime"]
    )


def attempt_acquire(
    store: LeaseStore,
    settings: LockSettings,
    state: LockState,
    now: ty.Callable[[], datetime],
) -> bool:
    """Claim the Lease if it has expired, or renew it if it is already ours.

    Returns False if somebody else holds a valid Lease, or if we lost a write race.
    Raises LeaseNotFoundError if the Lease is missing and we may not create it; any other
    error from the store is raised unchanged.
    """
    lease = _read_or_create(store, settings)
    is_self = lease.holder_identity == settings.holder_identity

    if state.is_locking and is_self:
        # don't trust what we remember - only a successful write below confirms it.
        state.is_locking = False

    read_at = now()
    if not lease.is_expired(read_at) and not is_self:
        logger.debug(
            "Lease %s/%s is held by %s until %s",
            settings.namespace,
            settings.lease_name,
            lease.holder_identity,
            lease.renew_time,
        )
        state.is_locking = False
        return False

    patch = make_patch(lease, settings, read_at)
    try:
        store.update(
            settings.lease_name,
            settings.namespace,
            lease.resource_version,
            patch,
            settings.labels,
        )
    except LeaseConflictError:
        if _our_write_landed(store, settings, patch):
            logger.info(
                "Lease %s/%s already carries our write - a retried patch saw its own update",
                settings.namespace,
                settings.lease_name,
            )
            state.is_locking = True
            return True
        logger.info(
            "Lost race for lease %s/%s",
            settings.namespace,
            settings.lease_name,
            resource_version=lease.resource_version,
        )
        state.is_locking = False
        return False

    if "leaseTransitions" in patch:
        logger.info(
            "Acquired lease %s/%s",
            settings.namespace,
            settings.lease_name,
            previous_holder=lease.holder_identity,
            transitions=patch["leaseTransitions"],
        )
    state.is_locking = True
    return True
