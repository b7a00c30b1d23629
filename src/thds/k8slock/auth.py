import typing as ty
from threading import RLock

from cachetools import TLRUCache, cached
from kubernetes import config as kube_config

from thds.core import fretry, log

from . import config

logger = log.getLogger(__name__)


def _retry_config(exc: Exception) -> bool:
    if isinstance(exc, kube_config.ConfigException):
        logger.debug("Retrying config load...")
        return True
    return False


empty_config_retry = fretry.retry_sleep(_retry_config, fretry.expo(retries=3, delay=0.2))

_AUTH_RLOCK = RLock()


def _expires_at(_key: ty.Any, _value: ty.Any, now: float) -> float:
    # read at every load, so a changed TTL applies from the next load onward.
    return now + config.auth_config_ttl_seconds()


_LOADED: TLRUCache = TLRUCache(1, ttu=_expires_at)


# every store operation wants a loaded config, but reloading it each time is wasteful.
@cached(_LOADED, lock=_AUTH_RLOCK)
def load_config() -> None:
    """Uses the local kubeconfig if there is one, otherwise the in-cluster service account."""
    logger.debug("Loading Kubernetes config...")
    try:
        empty_config_retry(kube_config.load_config)()
    except kube_config.ConfigException:
        logger.error("Failed to load kube-config")
        raise


def reload_config() -> None:
    """For when the API server tells us our credentials went stale."""
    with _AUTH_RLOCK:
        _LOADED.clear()
    load_config()
