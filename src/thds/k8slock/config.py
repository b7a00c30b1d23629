from datetime import timedelta

from thds.core import config

from .identity import parse_namespace, user_namespace


k8s_namespace = config.ConfigItem("thds.k8slock.namespace", user_namespace(), parse=parse_namespace)

lease_duration_seconds = config.ConfigItem(
    "thds.k8slock.lease_duration_seconds", int(timedelta(seconds=30).total_seconds()), parse=int
)
create_lease_if_not_exist = config.ConfigItem(
    "thds.k8slock.create_lease_if_not_exist", True, parse=config.tobool
)

# these only cover connection hiccups and expired credentials - a 409 or 404 from the API
# server is never retried at this level. 0 makes every transport error fatal.
store_transient_retries = config.ConfigItem("thds.k8slock.store.transient_retries", 2, parse=int)
store_transient_retry_delay_seconds = config.ConfigItem(
    "thds.k8slock.store.transient_retry_delay_seconds", 1.0, parse=float
)

auth_config_ttl_seconds = config.ConfigItem(
    "thds.k8slock.auth.config_ttl_seconds", int(timedelta(minutes=2).total_seconds()), parse=int
)
