import time
import typing as ty
from datetime import datetime, timedelta
from threading import Lock, Thread

from thds.core import log

from . import _acquire
from ._funcs import utc_now
from .policy import FOREVER, RetryPolicy
from .settings import LockState, make_settings
from .store import KubernetesLeaseStore
from .types import LeaseStore, LockStatus

logger = log.getLogger(__name__)


def _daemon(target: ty.Callable[[], None]) -> None:
    Thread(target=target, daemon=True, name="k8slock-renewal").start()


class K8sLock:
    """A mutual-exclusion lock shared by any number of processes, backed by a single
    Kubernetes Lease.

    Whoever last wrote their identity into an unexpired Lease holds the lock. Holders must
    keep renewing the Lease (start_locking does this for you in a background thread);
    if they stop, the Lease expires after `lease_duration` and anyone may take it.

    Nothing is ever deleted or released explicitly - stop_locking simply stops renewing.
    """

    def __init__(
        self,
        *,
        lease_name: str,
        namespace: str = "",
        holder_identity: str = "",
        lease_duration: ty.Optional[timedelta] = None,
        refresh_interval: ty.Optional[timedelta] = None,
        retry_interval: ty.Optional[timedelta] = None,
        create_lease_if_not_exist: ty.Optional[bool] = None,
        labels: ty.Optional[ty.Mapping[str, str]] = None,
        store: ty.Optional[LeaseStore] = None,
        clock: ty.Callable[[], datetime] = utc_now,
        sleep: ty.Callable[[float], ty.Any] = time.sleep,
        spawn: ty.Callable[[ty.Callable[[], None]], ty.Any] = _daemon,
        on_lock_lost: ty.Optional[ty.Callable[[], ty.Any]] = None,
        on_renewal_error: ty.Optional[ty.Callable[[Exception], ty.Any]] = None,
    ) -> None:
        self.settings = make_settings(
            lease_name,
            namespace=namespace,
            holder_identity=holder_identity,
            lease_duration=lease_duration,
            refresh_interval=refresh_interval,
            retry_interval=retry_interval,
            create_lease_if_not_exist=create_lease_if_not_exist,
            labels=labels,
        )
        self.store: LeaseStore = store or KubernetesLeaseStore()
        self.state = LockState()
        self._clock = clock
        self._sleep = sleep
        self._spawn = spawn
        self._on_lock_lost = on_lock_lost
        self._on_renewal_error = on_renewal_error
        self._renewing = False
        self._renewing_lock = Lock()

    @property
    def holder_identity(self) -> str:
        return self.settings.holder_identity

    @property
    def is_locking(self) -> bool:
        return self.state.is_locking

    @property
    def keep_locking(self) -> bool:
        return self.state.keep_locking

    def status(self) -> LockStatus:
        return LockStatus(is_locking=self.state.is_locking)

    def _log_context(self) -> ty.ContextManager:
        return log.logger_context(
            lease=f"{self.settings.namespace}/{self.settings.lease_name}",
            holder=self.settings.holder_identity,
        )

    def attempt_acquire(self) -> bool:
        """One attempt to claim (or renew) the Lease. Does not wait."""
        with self._log_context():
            return _acquire.attempt_acquire(self.store, self.settings, self.state, self._clock)

    def get_lock(self, wait_until_lock: bool = False, policy: ty.Optional[RetryPolicy] = None) -> bool:
        """If wait_until_lock, keep trying every retry interval until we get the lock, or
        until the policy says to give up. By default that is never.

        Errors other than losing a race are raised immediately, even while waiting.
        """
        locked = self.attempt_acquire()
        if not wait_until_lock:
            return locked

        policy = policy or FOREVER
        interval_s = (policy.interval or self.settings.retry_interval).total_seconds()
        started = self._clock()
        attempts = 1
        while not locked:
            if policy.should_give_up(attempts, started, self._clock()):
                logger.info(
                    f"Giving up on lease {self.settings.lease_name} after {attempts} attempts"
                )
                return False
            self._sleep(interval_s)
            locked = self.attempt_acquire()
            attempts += 1
        return locked

    def start_locking(self, policy: ty.Optional[RetryPolicy] = None) -> LockStatus:
        """Blocks until the lock is acquired, then keeps it renewed in the background
        until stop_locking is called or the lock is lost.
        """
        if not self.get_lock(True, policy):
            return self.status()

        with self._renewing_lock:
            self.state.keep_locking = True
            if not self._renewing:
                self._renewing = True
                logger.info(
                    f"Renewing lease {self.settings.lease_name} every {self.settings.refresh_interval}"
                )
                self._spawn(self._keep_locking)
        return self.status()

    def stop_locking(self) -> None:
        """Stops renewing at the next opportunity. A renewal already underway will finish.

        The Lease is left to expire on its own.
        """
        with self._renewing_lock:
            if self.state.keep_locking:
                logger.info(f"Will stop renewing lease {self.settings.lease_name}")
            self.state.keep_locking = False

    def _should_continue(self) -> bool:
        with self._renewing_lock:
            if not self.state.keep_locking:
                self._renewing = False
            return self._renewing

    def _give_up_renewing(self) -> None:
        with self._renewing_lock:
            self.state.keep_locking = False
            self._renewing = False

    def _keep_locking(self) -> None:
        """The body of the renewal thread."""
        refresh_s = self.settings.refresh_interval.total_seconds()
        while True:
            self._sleep(refresh_s)
            if not self._should_continue():
                return

            try:
                renewed = self.attempt_acquire()
            except Exception as ex:
                self._give_up_renewing()
                logger.exception(f"Failed to renew lease {self.settings.lease_name}; no longer renewing")
                if self._on_renewal_error:
                    self._on_renewal_error(ex)
                return

            if not renewed:
                self._give_up_renewing()
                logger.warning(f"Lost lease {self.settings.lease_name}; no longer renewing")
                if self._on_lock_lost:
                    self._on_lock_lost()
                return

    def __enter__(self) -> LockStatus:
        return self.start_locking()

    def __exit__(self, *_exc: ty.Any) -> None:
        self.stop_locking()
