"""Trilliant Health distributed lock on top of Kubernetes Leases."""

from thds.core import meta

from . import config  # noqa: F401
from ._acquire import attempt_acquire  # noqa: F401
from .errors import LeaseConflictError, LeaseNotFoundError  # noqa: F401
from .lock import K8sLock  # noqa: F401
from .policy import FOREVER, RetryPolicy  # noqa: F401
from .settings import LockSettings, LockState  # noqa: F401
from .store import KubernetesLeaseStore  # noqa: F401
from .types import LeaseRecord, LeaseStore, LockStatus  # noqa: F401

__version__ = meta.get_version(__name__)
