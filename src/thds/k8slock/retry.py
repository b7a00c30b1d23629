import time
import typing as ty
from functools import wraps

import urllib3.exceptions
from kubernetes import client

from thds.core import log

from . import auth, config

logger = log.getLogger(__name__)

F = ty.TypeVar("F", bound=ty.Callable)


# The Kubernetes SDK does not retry dropped connections or refresh expired credentials
# on its own. Both happen often enough in long-lived lock holders that we retry them
# here, a small number of times, before treating them as fatal.
_URLLIB_COMMON = (
    urllib3.exceptions.ProtocolError,
    urllib3.exceptions.MaxRetryError,
)


def is_transient(ex: Exception) -> bool:
    return isinstance(ex, _URLLIB_COMMON) or (
        isinstance(ex, client.exceptions.ApiException) and ex.reason == "Unauthorized"
    )


def k8s_sdk_retry(
    max_retries: ty.Optional[int] = None,
    on_unauthorized: ty.Optional[ty.Callable[[], None]] = None,
) -> ty.Callable[[F], F]:
    """Retries connection failures and auth expiry only. Every other exception, including
    the 404s and 409s that the lock algorithm cares about, is raised immediately.

    max_retries defaults to the configured store.transient_retries at call time.
    on_unauthorized refreshes credentials before the retry, and defaults to reloading the
    kube config.
    """

    def decorator(f: F) -> F:
        @wraps(f)
        def wrapper(*args, **kwargs):  # type: ignore
            retries = config.store_transient_retries() if max_retries is None else max_retries
            i = 0
            while True:
                try:
                    return f(*args, **kwargs)
                except Exception as ex:
                    if not is_transient(ex):
                        raise
                    if i >= retries:
                        logger.warning(f"Failing after {i + 1} tries", exc=str(ex))
                        raise
                    if isinstance(ex, client.exceptions.ApiException):
                        logger.info(f"{ex.reason} - refreshing credentials before retrying")
                        (on_unauthorized or auth.reload_config)()
                    else:
                        logger.debug("Encountered probable connection timeout - retrying", exc=str(ex))

                    i += 1
                    logger.info(f"Will retry after K8S error {str(ex)}; attempt {i}")
                time.sleep(config.store_transient_retry_delay_seconds())

        return ty.cast(F, wrapper)

    return decorator
