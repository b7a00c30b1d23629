import typing as ty
from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType

from thds.core import log

from . import config
from .identity import default_holder_identity, parse_namespace

logger = log.getLogger(__name__)


@dataclass(frozen=True)
class LockSettings:
    """Everything that stays fixed for the life of a Lock."""

    lease_name: str
    namespace: str
    holder_identity: str
    lease_duration: timedelta
    refresh_interval: timedelta
    retry_interval: timedelta
    create_lease_if_not_exist: bool
    labels: ty.Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def lease_duration_seconds(self) -> int:
        return int(self.lease_duration.total_seconds())


@dataclass
class LockState:
    """What this one Lock instance last concluded about its ownership."""

    is_locking: bool = False
    keep_locking: bool = False


def _positive(name: str, value: timedelta) -> timedelta:
    if value <= timedelta(0):
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def make_settings(
    lease_name: str,
    namespace: str = "",
    holder_identity: str = "",
    lease_duration: ty.Optional[timedelta] = None,
    refresh_interval: ty.Optional[timedelta] = None,
    retry_interval: ty.Optional[timedelta] = None,
    create_lease_if_not_exist: ty.Optional[bool] = None,
    labels: ty.Optional[ty.Mapping[str, str]] = None,
) -> LockSettings:
    """Fills in defaults from config and validates.

    By default we renew twice per lease duration, and retry a busy lock once per lease
    duration.
    """
    if not lease_name:
        raise ValueError("A lease name is required")

    namespace = parse_namespace(namespace) if namespace else config.k8s_namespace()
    if not namespace:
        raise ValueError("A namespace is required")

    if lease_duration is None:
        lease_duration = timedelta(seconds=config.lease_duration_seconds())
    _positive("lease_duration", lease_duration)
    if lease_duration.total_seconds() != int(lease_duration.total_seconds()):
        raise ValueError(f"lease_duration must be a whole number of seconds, got {lease_duration}")

    refresh_interval = _positive(
        "refresh_interval", refresh_interval if refresh_interval is not None else lease_duration / 2
    )
    if refresh_interval >= lease_duration:
        logger.warning(
            f"Refresh interval {refresh_interval} is not shorter than the lease duration"
            f" {lease_duration}; the lease will lapse between renewals.",
            lease=lease_name,
        )

    return LockSettings(
        lease_name=lease_name,
        namespace=namespace,
        holder_identity=holder_identity or default_holder_identity(),
        lease_duration=lease_duration,
        refresh_interval=refresh_interval,
        retry_interval=_positive(
            "retry_interval", retry_interval if retry_interval is not None else lease_duration
        ),
        create_lease_if_not_exist=(
            config.create_lease_if_not_exist()
            if create_lease_if_not_exist is None
            else create_lease_if_not_exist
        ),
        labels=MappingProxyType(dict(labels or {})),
    )
